"""In-memory authorization store implementation for testing.

This module provides a store that keeps authorizations and settings in
dictionaries and simulates the change feed and TTL expiry without requiring
a database.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Sequence, Union

from door_dialer.store.authorization_store import AuthorizationStore, StoreError
from door_dialer.store.models import Authorization, ChangeEvent, LocationSettings, Person

logger = logging.getLogger(__name__)

_FeedItem = Union[ChangeEvent, Exception, None]


class InMemoryAuthorizationStore(AuthorizationStore):
    """In-memory store for testing and mock mode.

    Every active watch() stream receives every insert/delete event. Failures
    can be injected per operation with fail_next().
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._authorizations: Dict[str, Authorization] = {}
        self._settings: Dict[str, LocationSettings] = {}
        self._watchers: List["asyncio.Queue[_FeedItem]"] = []
        self._failures: Dict[str, StoreError] = {}

    def _maybe_fail(self, operation: str) -> None:
        error = self._failures.pop(operation, None)
        if error is not None:
            logger.debug("Simulated failure in %s", operation)
            raise error

    def _publish(self, item: _FeedItem) -> None:
        for queue in list(self._watchers):
            queue.put_nowait(item)

    async def find_pending(self, location_id: str) -> List[Authorization]:
        """Get all authorizations for a location."""
        self._maybe_fail("find_pending")
        return [a for a in self._authorizations.values() if a.location_id == location_id]

    async def find_settings(self, location_id: str) -> Optional[LocationSettings]:
        """Get the settings for a location."""
        self._maybe_fail("find_settings")
        return self._settings.get(location_id)

    async def delete_many(self, authorization_ids: Sequence[str]) -> int:
        """Delete authorizations, publishing a delete event for each one removed."""
        self._maybe_fail("delete_many")
        deleted = 0
        for authorization_id in authorization_ids:
            if self._authorizations.pop(authorization_id, None) is not None:
                deleted += 1
                self._publish(ChangeEvent.delete(authorization_id))
        logger.debug("Deleted %d authorization(s)", deleted)
        return deleted

    def watch(self) -> AsyncIterator[ChangeEvent]:
        """Subscribe to the change feed.

        The subscription is registered immediately, so events published after
        this call are delivered even if iteration starts later.
        """
        queue: "asyncio.Queue[_FeedItem]" = asyncio.Queue()
        self._watchers.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: "asyncio.Queue[_FeedItem]") -> AsyncIterator[ChangeEvent]:
        try:
            while True:
                item = await queue.get()
                if item is None:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            if queue in self._watchers:
                self._watchers.remove(queue)

    async def upsert_authorization(self, person: Person, location_id: str) -> str:
        """Create an authorization, or refresh an existing one for the same phone number."""
        self._maybe_fail("upsert_authorization")
        now = datetime.now(timezone.utc)

        for existing in self._authorizations.values():
            if existing.person.phone == person.phone and existing.location_id == location_id:
                # A refresh is an update, which the change feed doesn't report
                self._authorizations[existing.id] = Authorization(
                    id=existing.id, person=existing.person, at=now, location_id=location_id
                )
                return existing.id

        return self.add_authorization(person, location_id, at=now).id

    async def save_settings(self, settings: LocationSettings) -> None:
        """Create or replace the settings for a location."""
        self._maybe_fail("save_settings")
        self._settings[settings.location_id] = settings

    async def close(self) -> None:
        """End every active change-feed stream."""
        self._publish(None)

    # Test helpers

    def add_authorization(
        self, person: Person, location_id: str, at: Optional[datetime] = None
    ) -> Authorization:
        """Insert an authorization and publish an insert event (for testing).

        Args:
            person: Person the authorization is for
            location_id: Location the authorization is for
            at: Creation time (defaults to now)

        Returns:
            The new Authorization
        """
        authorization = Authorization(
            id=uuid.uuid4().hex,
            person=person,
            at=at or datetime.now(timezone.utc),
            location_id=location_id,
        )
        self._authorizations[authorization.id] = authorization
        self._publish(ChangeEvent.insert(authorization))
        logger.debug("Added authorization %s for %s", authorization.id, person.name)
        return authorization

    def add_settings(self, settings: LocationSettings) -> None:
        """Store settings without going through the async API (for testing)."""
        self._settings[settings.location_id] = settings

    def simulate_expiry(self, authorization_id: str) -> bool:
        """Remove an authorization as the TTL mechanism would (for testing).

        Returns:
            True if the authorization existed
        """
        if self._authorizations.pop(authorization_id, None) is None:
            return False
        logger.debug("Authorization %s expired (simulated)", authorization_id)
        self._publish(ChangeEvent.delete(authorization_id))
        return True

    def fail_next(self, operation: str, message: str = "Simulated store failure") -> None:
        """Make the next call to an operation raise StoreError (for testing).

        Args:
            operation: Method name, e.g. "find_pending" or "delete_many"
            message: Error message
        """
        self._failures[operation] = StoreError(message)

    def fail_watch(self, message: str = "Simulated change feed failure") -> None:
        """Make every active change-feed stream raise StoreError (for testing)."""
        self._publish(StoreError(message))

    def get(self, authorization_id: str) -> Optional[Authorization]:
        """Look up an authorization by id (for testing)."""
        return self._authorizations.get(authorization_id)

    def __len__(self) -> int:
        return len(self._authorizations)
