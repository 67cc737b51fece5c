"""Push notifications through Firebase Cloud Messaging.

Credentials come from a service account given either inline (raw JSON or
base64-encoded JSON) or as a file path. The Firebase app is created lazily
on first send under its own name, so it never clashes with a default app.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
from dataclasses import dataclass, field

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from project_escrow.logging_config import get_logger

logger = get_logger(__name__)

_APP_NAME = "project-escrow"

# FCM rejects multicast messages with more tokens than this.
MAX_MULTICAST_TOKENS = 500
_INVALID_TOKEN_ERRORS = (messaging.UnregisteredError, exceptions.InvalidArgumentError)


@dataclass
class PushResult:
    """Outcome of one multicast send."""

    sent: int = 0
    failed: int = 0
    invalid_tokens: list[str] = field(default_factory=list)


def load_service_account(raw: str) -> dict:
    """Parse a service account given as base64-encoded or raw JSON."""
    try:
        decoded = base64.b64decode(raw, validate=True).decode("utf-8")
        return json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError):
        return json.loads(raw)


class FcmPushClient:
    """Sends a notification to every registered device of a user."""

    def __init__(
        self,
        service_account_json: str = "",
        credentials_path: str = "",
        default_title: str = "ProWorkers",
    ) -> None:
        self._service_account_json = service_account_json
        self._credentials_path = credentials_path
        self._default_title = default_title
        self._app: firebase_admin.App | None = None

    def _get_app(self) -> firebase_admin.App:
        if self._app is not None:
            return self._app
        try:
            self._app = firebase_admin.get_app(_APP_NAME)
            return self._app
        except ValueError:
            pass

        if self._service_account_json:
            cred = credentials.Certificate(load_service_account(self._service_account_json))
        elif self._credentials_path:
            cred = credentials.Certificate(self._credentials_path)
        else:
            cred = credentials.ApplicationDefault()
        self._app = firebase_admin.initialize_app(cred, name=_APP_NAME)
        logger.info("push.firebase_initialized")
        return self._app

    async def send(
        self,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> PushResult:
        """Send the notification to every token, in batches FCM accepts.

        Tokens FCM reports as unregistered or malformed are returned in
        ``invalid_tokens`` so the caller can prune them.

        Raises:
            firebase_admin.exceptions.FirebaseError: If the whole send fails.
            ValueError: If the credentials cannot be loaded.
        """
        if not tokens:
            return PushResult()

        app = self._get_app()
        notification = messaging.Notification(title=title or self._default_title, body=body)
        payload = {k: str(v) for k, v in (data or {}).items()}

        result = PushResult()
        for start in range(0, len(tokens), MAX_MULTICAST_TOKENS):
            batch = tokens[start : start + MAX_MULTICAST_TOKENS]
            message = messaging.MulticastMessage(
                tokens=batch, notification=notification, data=payload
            )
            response = await asyncio.to_thread(
                messaging.send_each_for_multicast, message, app=app
            )
            result.sent += response.success_count
            result.failed += response.failure_count
            for token, reply in zip(batch, response.responses, strict=True):
                if reply.success:
                    continue
                if isinstance(reply.exception, _INVALID_TOKEN_ERRORS):
                    result.invalid_tokens.append(token)

        logger.info(
            "push.sent",
            sent=result.sent,
            failed=result.failed,
            invalid=len(result.invalid_tokens),
        )
        return result
