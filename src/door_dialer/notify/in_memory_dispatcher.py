"""In-memory notification dispatcher for testing and mock mode."""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from door_dialer.notify.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentMessage:
    """A message handed to the in-memory dispatcher."""

    to_phone: str
    from_number: str
    body: str


class InMemoryDispatcher(NotificationDispatcher):
    """Records messages instead of sending them."""

    def __init__(self, fail_numbers: Optional[Iterable[str]] = None) -> None:
        """Initialize the dispatcher.

        Args:
            fail_numbers: Recipients for which send() reports failure
        """
        self.sent: List[SentMessage] = []
        self._fail_numbers: Set[str] = set(fail_numbers or ())

    async def send(self, to_phone: str, from_number: str, body: str) -> bool:
        """Record the message, or report failure for configured numbers."""
        if to_phone in self._fail_numbers:
            logger.warning("Simulated failure sending message to %s", to_phone)
            return False

        self.sent.append(SentMessage(to_phone=to_phone, from_number=from_number, body=body))
        logger.info("Message to %s: %s", to_phone, body)
        return True

    def messages_to(self, phone: str) -> List[str]:
        """Get the bodies of all messages sent to a number (for testing)."""
        return [m.body for m in self.sent if m.to_phone == phone]
