"""Watches the authorization change feed for authorizations that expire unused."""

import logging

from door_dialer.authorization_cache import AuthorizationCache
from door_dialer.metrics import Metrics
from door_dialer.notify.notifier import Notifier
from door_dialer.store.authorization_store import AuthorizationStore
from door_dialer.store.models import ChangeEvent, ChangeType

logger = logging.getLogger(__name__)


class ExpiryMonitor:
    """Keeps the AuthorizationCache in step with the store's change feed.

    When a deleted authorization is still in the cache nobody used it, so
    the person is told they were missed.
    """

    # pylint: disable=too-many-arguments,too-many-positional-arguments
    def __init__(
        self,
        location_id: str,
        store: AuthorizationStore,
        cache: AuthorizationCache,
        notifier: Notifier,
        metrics: Metrics,
    ) -> None:
        """Initialize the monitor.

        Args:
            location_id: Location whose pending authorizations seed the cache
            store: Store providing the change feed
            cache: Cache to keep up to date
            notifier: Sends missed-arrival messages
            metrics: Metrics sink for the "missed" counter
        """
        self._location_id = location_id
        self._store = store
        self._cache = cache
        self._notifier = notifier
        self._metrics = metrics

    async def seed(self) -> None:
        """Load the authorizations already pending for the location.

        Raises:
            StoreError: If the store cannot be queried
        """
        authorizations = await self._store.find_pending(self._location_id)
        self._cache.seed(authorizations)

    async def handle_event(self, event: ChangeEvent) -> None:
        """Apply one change-feed event to the cache."""
        if event.operation == ChangeType.INSERT:
            if event.authorization is None:
                logger.warning("Insert event without document: %s", event.authorization_id)
                return
            self._cache.on_insert(event.authorization_id, event.authorization.person)

        elif event.operation == ChangeType.DELETE:
            logger.debug("Got authorization deletion: %s", event.authorization_id)
            person = self._cache.on_delete(event.authorization_id)
            if person is None:
                # Already consumed by an admission
                return

            logger.info("Authorization for %s expired unused", person.name)
            self._metrics.increment_missed()
            try:
                await self._notifier.notify_missed(person)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Failed to send missed message to %s", person.name)

    async def run(self) -> None:
        """Consume the change feed until it ends.

        Raises:
            StoreError: If the change feed fails
        """
        logger.info("Watching authorization changes")
        async for event in self._store.watch():
            await self.handle_event(event)
        logger.info("Authorization change feed ended")
