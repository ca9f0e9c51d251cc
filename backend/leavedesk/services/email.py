"""Email Dispatcher collaborator.

The engine hands over a recipient and a structured payload and gets a
boolean back. Rendering and delivery live outside this service.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EmailPayload(BaseModel):
    """Structured notification handed to the dispatcher."""

    template: str
    subject: str
    data: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class EmailDispatcher(Protocol):
    """Interface for the Email Dispatcher."""

    async def send(self, recipient: str, payload: EmailPayload) -> bool:
        """Deliver a notification. Returns False when delivery failed."""
        ...


class LoggingEmailDispatcher:
    """Default dispatcher: writes the notification to the log and reports success."""

    async def send(self, recipient: str, payload: EmailPayload) -> bool:
        logger.info("Email %s to %s: %s", payload.template, recipient, payload.subject)
        return True


class InMemoryEmailDispatcher:
    """Collects notifications in memory. Set ``fail`` or ``error`` to simulate delivery problems."""

    def __init__(self, *, fail: bool = False, error: Exception | None = None) -> None:
        self.sent: list[tuple[str, EmailPayload]] = []
        self.fail = fail
        self.error = error

    async def send(self, recipient: str, payload: EmailPayload) -> bool:
        if self.error is not None:
            raise self.error
        if self.fail:
            return False
        self.sent.append((recipient, payload))
        return True

    def templates_for(self, recipient: str) -> list[str]:
        return [payload.template for to, payload in self.sent if to == recipient]


_email_dispatcher: EmailDispatcher = LoggingEmailDispatcher()


def get_email_dispatcher() -> EmailDispatcher:
    return _email_dispatcher


def set_email_dispatcher(dispatcher: EmailDispatcher) -> None:
    """Override the dispatcher (for testing or production wiring)."""
    global _email_dispatcher
    _email_dispatcher = dispatcher


async def notify(recipient: str, payload: EmailPayload) -> bool:
    """Send a notification without ever failing the caller.

    Must only be called after the caller's transaction has committed.
    """
    try:
        delivered = await get_email_dispatcher().send(recipient, payload)
    except Exception:
        logger.exception("Email %s to %s failed", payload.template, recipient)
        return False
    if not delivered:
        logger.warning("Email %s to %s was not delivered", payload.template, recipient)
    return delivered
