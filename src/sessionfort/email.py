"""Outbound email — the sender protocol and the bundled implementations.

SessionFort only needs ``send(to, subject, body)``; anything satisfying the
``EmailSender`` protocol can be passed to the SessionFort constructor.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

import httpx

from sessionfort.core.errors import DeliveryError
from sessionfort.utils import redact_email

logger = logging.getLogger("sessionfort.email")


@runtime_checkable
class EmailSender(Protocol):
    """Delivers one plain-text message. Raises DeliveryError on failure."""

    async def send(self, to: str, subject: str, body: str) -> None:
        ...


class ConsoleEmailSender:
    """Development sender: writes the message to the log instead of sending it.

    The body contains the one-time code, so never use this in production.
    """

    async def send(self, to: str, subject: str, body: str) -> None:
        logger.warning("[DEV] email to %s: %s | %s", to, subject, body)


class SendGridEmailSender:
    """Sends mail through the SendGrid v3 HTTP API."""

    API_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout
        self._transport = transport

    async def send(self, to: str, subject: str, body: str) -> None:
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.API_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as e:
            logger.error("SendGrid request to %s failed: %s", redact_email(to), e)
            raise DeliveryError() from e

        if resp.status_code >= 300:
            logger.error(
                "SendGrid rejected mail to %s: status=%s body=%s",
                redact_email(to), resp.status_code, resp.text[:200],
            )
            raise DeliveryError()

        logger.info("Sent '%s' to %s (status %s)", subject, redact_email(to), resp.status_code)


async def dispatch(sender: EmailSender, to: str, subject: str, body: str, *, timeout: float) -> None:
    """Send with a hard deadline so a stuck mail server surfaces as DeliveryError.

    Raises:
        DeliveryError: If the sender fails or does not finish within ``timeout`` seconds.
    """
    try:
        await asyncio.wait_for(sender.send(to, subject, body), timeout=timeout)
    except DeliveryError:
        raise
    except TimeoutError as e:
        logger.warning("Email to %s timed out after %ss", redact_email(to), timeout)
        raise DeliveryError("Email delivery timed out") from e
    except Exception as e:
        logger.exception("Email sender %s failed", type(sender).__name__)
        raise DeliveryError() from e
