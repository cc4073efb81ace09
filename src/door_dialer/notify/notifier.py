"""Composes and fans out the text messages people and admins receive."""

import asyncio
import logging
from typing import Awaitable, List, Optional, Sequence

from door_dialer.notify.dispatcher import NotificationDispatcher
from door_dialer.store.models import Authorization, LocationSettings, Person

logger = logging.getLogger(__name__)

LET_IN_MESSAGE = "Just let you in!"
ADMIN_SUMMARY_MESSAGE = "I just let the following people in: {names}"
MISSED_MESSAGE = (
    "Hmm, I didn't see you arrive within 5 minutes! Text again if you need to get in"
)


class Notifier:
    """Sends let-in, admin summary and missed-arrival messages.

    Failed sends are logged and otherwise ignored; they never hold up or
    undo opening the door.
    """

    def __init__(self, dispatcher: NotificationDispatcher, from_number: str) -> None:
        """Initialize the notifier.

        Args:
            dispatcher: Dispatcher used to send messages
            from_number: Number messages are sent from
        """
        self._dispatcher = dispatcher
        self._from_number = from_number

    async def _send(self, to_phone: str, body: str) -> bool:
        sent = await self._dispatcher.send(to_phone, self._from_number, body)
        if not sent:
            logger.warning("Failed to send message to %s", to_phone)
        return sent

    async def notify_admitted(
        self,
        authorizations: Sequence[Authorization],
        settings: Optional[LocationSettings],
    ) -> None:
        """Tell everyone who was let in, and the admins who it was.

        Every person gets a personal message. Admins get one summary each,
        listing only people without no_notify; no summary is sent if nobody
        qualifies.

        Args:
            authorizations: Authorizations consumed by the admission
            settings: Settings for the location (None means no admin numbers)
        """
        sends: List[Awaitable[bool]] = [
            self._send(auth.person.phone, LET_IN_MESSAGE) for auth in authorizations
        ]
        sends.extend(self._admin_summaries(authorizations, settings))

        await asyncio.gather(*sends)
        logger.debug("Finished sending admission notifications")

    def _admin_summaries(
        self,
        authorizations: Sequence[Authorization],
        settings: Optional[LocationSettings],
    ) -> List[Awaitable[bool]]:
        if settings is None:
            logger.warning("No settings found, skipping admin notifications")
            return []

        names = [auth.person.name for auth in authorizations if not auth.person.no_notify]
        if not names:
            logger.debug("Everyone opted out of admin summaries")
            return []

        body = ADMIN_SUMMARY_MESSAGE.format(names=",".join(names))
        return [self._send(number, body) for number in settings.notify_numbers]

    async def notify_missed(self, person: Person) -> bool:
        """Tell a person their authorization expired before they arrived.

        Returns:
            True if the message was sent
        """
        logger.debug("Sending authorization expiration message to %s", person.name)
        return await self._send(person.phone, MISSED_MESSAGE)
