"""Transactional email through the Brevo HTTP API.

Usage:
    client = BrevoEmailClient(api_key, api_url, "no-reply@x.com", "ProWorkers")
    await client.send(to_email="w@x.com", subject="...", text="...", html="...")
"""

from __future__ import annotations

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from project_escrow.logging_config import get_logger

logger = get_logger(__name__)


def _is_transient(exc: BaseException) -> bool:
    """Network failures and 5xx answers are worth another attempt; 4xx are not."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class BrevoEmailClient:
    """Sends a single transactional email per call."""

    def __init__(
        self,
        api_key: str,
        api_url: str,
        sender_email: str,
        sender_name: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._sender = {"email": sender_email, "name": sender_name}
        self._timeout = timeout
        self._transport = transport

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    async def send(
        self,
        to_email: str,
        subject: str,
        text: str,
        html: str,
        to_name: str | None = None,
    ) -> None:
        """POST one email to Brevo.

        Raises:
            httpx.HTTPError: If Brevo cannot be reached or rejects the email.
        """
        recipient = {"email": to_email}
        if to_name:
            recipient["name"] = to_name
        payload = {
            "sender": self._sender,
            "to": [recipient],
            "subject": subject,
            "textContent": text,
            "htmlContent": html,
        }
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                self._api_url,
                json=payload,
                headers={"api-key": self._api_key, "accept": "application/json"},
            )
            response.raise_for_status()
        logger.info("email.sent", to=to_email, subject=subject)
