"""Domain exceptions for the project escrow service.

These are framework-agnostic business rule violations. The API layer's
middleware translates them into JSON error responses; each carries a
stable ``code`` so callers can branch without parsing messages.
"""


class EscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Input Errors ---


class ValidationError(EscrowError):
    """Raised when a command carries missing or malformed input."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")


# --- Identity Errors ---


class AuthenticationError(EscrowError):
    """Raised when no valid actor identity accompanies a request."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message=message, code="NOT_AUTHENTICATED")


class AuthorizationError(EscrowError):
    """Raised when the actor is not the party a transition requires.

    Example: the client calling ``accept`` on their own offer.
    """

    def __init__(self, project_id: str, required_role: str | None = None) -> None:
        if required_role:
            message = f"Only the project {required_role} may perform this action"
        else:
            message = "Not authorized to access this project"
        super().__init__(message=message, code="NOT_AUTHORIZED")
        self.project_id = project_id
        self.required_role = required_role


# --- State Machine Errors ---


class InvalidStateTransitionError(EscrowError):
    """Raised when a command is not allowed from the project's current status.

    Example: ``reject`` on a project that is already ``accepted``.
    """

    def __init__(self, current_state: str, attempted_event: str, reason: str = "") -> None:
        message = f"Cannot {attempted_event} a project in status '{current_state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message=message, code="INVALID_STATE_TRANSITION")
        self.current_state = current_state
        self.attempted_event = attempted_event


class ConcurrencyConflictError(EscrowError):
    """Raised when another request modified the project first."""

    def __init__(self, project_id: str) -> None:
        super().__init__(
            message=f"Project {project_id} was modified concurrently, reload and retry",
            code="CONCURRENT_MODIFICATION",
        )
        self.project_id = project_id


# --- Lookup Errors ---


class ProjectNotFoundError(EscrowError):
    """Raised when a project ID does not exist."""

    def __init__(self, project_id: str) -> None:
        super().__init__(
            message=f"Project not found: {project_id}",
            code="PROJECT_NOT_FOUND",
        )
        self.project_id = project_id


class UserNotFoundError(EscrowError):
    def __init__(self, user_id: str) -> None:
        super().__init__(message=f"User not found: {user_id}", code="USER_NOT_FOUND")
        self.user_id = user_id


class NotificationNotFoundError(EscrowError):
    def __init__(self, notification_id: str) -> None:
        super().__init__(
            message=f"Notification not found: {notification_id}",
            code="NOTIFICATION_NOT_FOUND",
        )


# --- External Collaborator Errors ---


class DependencyError(EscrowError):
    """Raised by a notification channel (in-app, email, push) that failed.

    Never reaches the caller of a transition: the dispatcher logs it and
    moves on to the next channel.
    """

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(message=f"{channel} delivery failed: {message}", code="DEPENDENCY_ERROR")
        self.channel = channel


# --- Idempotency Errors ---


class DuplicateOperationError(EscrowError):
    """Raised when an idempotency key has already been used."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )
