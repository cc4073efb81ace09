"""Abstract notification dispatcher interface."""

from abc import ABC, abstractmethod


class NotificationDispatcher(ABC):
    """Abstract base class for sending text messages."""

    @abstractmethod
    async def send(self, to_phone: str, from_number: str, body: str) -> bool:
        """Send a text message.

        Args:
            to_phone: Recipient phone number
            from_number: Sender phone number
            body: Message text

        Returns:
            True if the message was accepted for delivery, False otherwise
        """
