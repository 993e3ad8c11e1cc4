"""Outbound email transports.

A transport accepts ``(recipient_email, kind, data)`` and reports ``sent``,
``deferred`` or ``failed``. Anything other than ``sent`` is non-fatal to the
caller; retries, if any, are the transport's own business.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import requests

logger = logging.getLogger(__name__)

DeliveryResult = Literal["sent", "deferred", "failed"]


class EmailTransport(Protocol):
    def send(self, recipient: str, kind: str, data: dict) -> DeliveryResult:
        """Hand one rendered notification to the email collaborator."""


class LogTransport:
    """Development transport: writes each email to the log and reports it sent."""

    def send(self, recipient: str, kind: str, data: dict) -> DeliveryResult:
        logger.info("Email [%s] to %s: %s", kind, recipient, data.get("subject", ""))
        return "sent"


class HttpEmailTransport:
    """
    Posts notifications to an HTTP email API.

    The endpoint receives ``{to, from, template, subject, body, data}`` as JSON.
    ``200``/``201`` mean sent, ``202`` means queued (deferred), everything else
    failed.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str = "",
        sender: str = "",
        timeout_seconds: float = 5.0,
    ) -> None:
        self.endpoint = endpoint
        self.api_key = api_key
        self.sender = sender
        self.timeout_seconds = timeout_seconds

    def send(self, recipient: str, kind: str, data: dict) -> DeliveryResult:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {
            "to": recipient,
            "from": self.sender,
            "template": kind,
            "subject": data.get("subject", ""),
            "body": data.get("body", ""),
            "data": data,
        }
        try:
            response = requests.post(
                self.endpoint, json=payload, headers=headers, timeout=self.timeout_seconds
            )
        except requests.exceptions.RequestException as exc:
            logger.warning("Email API request failed: %s", exc)
            return "failed"
        if response.status_code in (200, 201):
            return "sent"
        if response.status_code == 202:
            return "deferred"
        logger.warning("Email API returned HTTP %s for %s", response.status_code, kind)
        return "failed"


def build_transport() -> EmailTransport:
    """Create the transport selected by ``config.email.transport``."""
    from quest_board.config import config

    if config.email.transport == "http" and config.email.endpoint:
        return HttpEmailTransport(
            config.email.endpoint,
            api_key=config.email.api_key,
            sender=config.email.sender,
            timeout_seconds=config.email.timeout_seconds,
        )
    return LogTransport()
