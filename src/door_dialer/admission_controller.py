"""Admission controller that decides whether to answer a ring and open the door.

This module provides the AdmissionController class which acts as the "brain"
of the door dialer: on every ring it looks up pending authorizations, and if
there are any it consumes them, notifies people, and has the modem answer
the call and dial the buzzer digits.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from door_dialer.authorization_cache import AuthorizationCache
from door_dialer.metrics import Metrics
from door_dialer.modem.modem_line import ModemLine
from door_dialer.notify.notifier import Notifier
from door_dialer.store.authorization_store import AuthorizationStore, StoreError
from door_dialer.store.models import Authorization

logger = logging.getLogger(__name__)


class AdmissionController:  # pylint: disable=too-many-instance-attributes
    """Runs at most one admission cycle at a time.

    A cycle covers one ring: look up authorizations, consume them, dial,
    wait for the modem's OK, hang up. Rings that arrive while a cycle is in
    progress are dropped, not queued.

    The wait for the modem's OK has no timeout. If the modem never answers,
    the controller stays busy and every later ring is dropped until the
    process restarts.
    """

    # pylint: disable=too-many-arguments,too-many-positional-arguments
    def __init__(
        self,
        location_id: str,
        dial_sequence: str,
        modem: ModemLine,
        store: AuthorizationStore,
        cache: AuthorizationCache,
        notifier: Notifier,
        metrics: Metrics,
    ) -> None:
        """Initialize the admission controller.

        Args:
            location_id: Location this door belongs to
            dial_sequence: Validated digits/commas that trigger the buzzer
            modem: Modem line to answer and dial on
            store: Authorization store
            cache: Local authorization cache
            notifier: Sends let-in and admin messages
            metrics: Metrics sink
        """
        self._location_id = location_id
        self._dial_sequence = dial_sequence
        self._modem = modem
        self._store = store
        self._cache = cache
        self._notifier = notifier
        self._metrics = metrics
        self._busy = False

        logger.debug("AdmissionController initialized for location %s", location_id)

    @property
    def is_busy(self) -> bool:
        """Whether an admission cycle is in progress."""
        return self._busy

    def on_ring(self) -> Optional["asyncio.Task[None]"]:
        """Handle a ring from the modem.

        Returns:
            The task running the new admission cycle, or None if the ring was
            dropped because a cycle is already in progress
        """
        if self._busy:
            logger.info("Ring ignored, admission cycle already in progress")
            return None

        self._busy = True
        logger.debug("Ring received, starting admission cycle")
        return asyncio.create_task(self._run_cycle())

    async def _run_cycle(self) -> None:
        side_tasks: List["asyncio.Task[None]"] = []
        errors: List[Exception] = []
        try:
            try:
                await self._admit(side_tasks)
            except Exception as e:  # pylint: disable=broad-exception-caught
                errors.append(e)

            # Joined even when the dial step failed
            results = await asyncio.gather(*side_tasks, return_exceptions=True)
            errors.extend(r for r in results if isinstance(r, Exception))

            self._record_errors(errors)
        finally:
            self._busy = False
            logger.debug("Admission cycle finished")

    async def _admit(self, side_tasks: List["asyncio.Task[None]"]) -> None:
        authorizations = await self._store.find_pending(self._location_id)
        if not authorizations:
            logger.info("No authorizations found: ignoring ring")
            return

        settings = await self._store.find_settings(self._location_id)
        names = ",".join(auth.person.name for auth in authorizations)

        # Forget the ids before the store deletes them so their delete
        # events are not mistaken for expiries
        for auth in authorizations:
            self._cache.remove(auth.id)

        side_tasks.append(
            asyncio.create_task(self._notifier.notify_admitted(authorizations, settings))
        )
        side_tasks.append(asyncio.create_task(self._expire(authorizations)))

        logger.info("Found authorizations for %s. Triggering door.", names)
        self._modem.trigger_dial(self._dial_sequence)
        self._metrics.increment_activated(len(authorizations))

        await self._modem.acknowledged.wait()
        self._modem.hangup()
        logger.info("Door triggered for %s", names)

    async def _expire(self, authorizations: Sequence[Authorization]) -> None:
        """Delete consumed authorizations from the store (they're one-time use)."""
        logger.debug("Expiring %d authorization(s)", len(authorizations))
        await self._store.delete_many([auth.id for auth in authorizations])
        logger.info("Authorization tickets successfully expired")

    def _record_errors(self, errors: Sequence[Exception]) -> None:
        if not errors:
            return

        store_errors = [e for e in errors if isinstance(e, StoreError)]
        if store_errors:
            logger.error("Store error during admission cycle: %s", store_errors[0])
            self._metrics.increment_store_error()

        # Other errors are logged only
        for error in errors:
            if not isinstance(error, StoreError):
                logger.error("Admission cycle failed: %s", error)
