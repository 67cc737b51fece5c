"""Escrow Project State Machine Guard.

Uses python-statemachine to enforce legal status transitions at the domain
level. The service asks the guard for the resulting status before it writes
anything, so an illegal command (e.g. reject after accept) never mutates
the project.

Transition table:
    offer_sent   -> accepted            (accept)       worker
    offer_sent   -> rejected            (reject)       worker
    accepted     -> in_progress         (pay_advance)  client
    in_progress  -> completed           (complete)     worker
    completed    -> completed           (pay_final)    client
    completed    -> completed_released  (release)      client, after final payment

Reserved statuses have no inbound transition. They are resolved before the
guard is built:
    pending_advance  behaves as accepted
    mid_level        behaves as in_progress
    cancelled        terminal, every event is refused
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from project_escrow.domain.enums import PartyRole, ProjectStatus
from project_escrow.domain.exceptions import InvalidStateTransitionError

GUARD_ALIASES: dict[ProjectStatus, ProjectStatus] = {
    ProjectStatus.PENDING_ADVANCE: ProjectStatus.ACCEPTED,
    ProjectStatus.MID_LEVEL: ProjectStatus.IN_PROGRESS,
}

TERMINAL_RESERVED: frozenset[ProjectStatus] = frozenset({ProjectStatus.CANCELLED})

# Every event the guard knows, in lifecycle order.
EVENTS: tuple[str, ...] = (
    "accept",
    "reject",
    "pay_advance",
    "complete",
    "pay_final",
    "release",
)

# The party allowed to issue each event.
EVENT_ROLES: dict[str, PartyRole] = {
    "accept": PartyRole.WORKER,
    "reject": PartyRole.WORKER,
    "pay_advance": PartyRole.CLIENT,
    "complete": PartyRole.WORKER,
    "pay_final": PartyRole.CLIENT,
    "release": PartyRole.CLIENT,
}


class ProjectStateMachine(StateMachine):
    """State machine that guards escrow project lifecycle transitions.

    Usage:
        sm = ProjectStateMachine("offer_sent")
        sm.accept()   # transitions to accepted
        sm.status     # "accepted"
    """

    # --- States ---
    OFFER_SENT = State("Offer sent", value=ProjectStatus.OFFER_SENT.value, initial=True)
    ACCEPTED = State("Accepted", value=ProjectStatus.ACCEPTED.value)
    REJECTED = State("Rejected", value=ProjectStatus.REJECTED.value, final=True)
    IN_PROGRESS = State("In progress", value=ProjectStatus.IN_PROGRESS.value)
    COMPLETED = State("Completed", value=ProjectStatus.COMPLETED.value)
    COMPLETED_RELEASED = State(
        "Completed and released",
        value=ProjectStatus.COMPLETED_RELEASED.value,
        final=True,
    )

    # --- Events / Transitions ---

    # Worker answers the offer
    accept = OFFER_SENT.to(ACCEPTED)
    reject = OFFER_SENT.to(REJECTED)

    # Client funds 10% up front
    pay_advance = ACCEPTED.to(IN_PROGRESS)

    # Worker delivers
    complete = IN_PROGRESS.to(COMPLETED)

    # Client funds the remaining 90%; status is unchanged
    pay_final = COMPLETED.to.itself()

    # Rating releases escrow to the worker
    release = COMPLETED.to(COMPLETED_RELEASED)

    def __init__(self, current_status: str = ProjectStatus.OFFER_SENT.value) -> None:
        """Initialize the guard at a stored project status.

        Args:
            current_status: A ProjectStatus value. Reserved aliases are
                resolved to the status they behave as.

        Raises:
            ValueError: If the status is unknown or has no guard state
                (``cancelled``).
        """
        status = resolve_guard_status(current_status)
        valid_values = {s.value for s in self.states}
        if status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")
        super().__init__(start_value=status)

    @property
    def status(self) -> str:
        """Return the current state value (matches ProjectStatus)."""
        return str(self.current_state.value)


def resolve_guard_status(status: str) -> str:
    """Map a stored status onto the guard state that governs it."""
    try:
        project_status = ProjectStatus(status)
    except ValueError:
        return status
    return GUARD_ALIASES.get(project_status, project_status).value


def fire(current_status: str, event_name: str) -> ProjectStatus:
    """Validate a transition and return the resulting status.

    Raises:
        InvalidStateTransitionError: If the event is unknown or not allowed
            from ``current_status``.
    """
    if event_name not in EVENTS:
        raise InvalidStateTransitionError(current_status, event_name, "unknown event")
    if current_status in TERMINAL_RESERVED:
        raise InvalidStateTransitionError(current_status, event_name)

    try:
        sm = ProjectStateMachine(current_status)
    except ValueError as err:
        raise InvalidStateTransitionError(current_status, event_name, str(err)) from err

    try:
        getattr(sm, event_name)()
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(current_status, event_name) from err
    return ProjectStatus(sm.status)


def allowed_events(current_status: str) -> list[str]:
    """Return the events that can fire from ``current_status``."""
    allowed = []
    for event_name in EVENTS:
        try:
            fire(current_status, event_name)
        except InvalidStateTransitionError:
            continue
        allowed.append(event_name)
    return allowed
