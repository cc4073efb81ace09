"""Local mirror of outstanding authorizations.

The change feed only says *that* an authorization was deleted, not whether
it was used or expired. Consumed authorizations are removed from this cache
before they are deleted from the store, so an entry still present when its
delete event arrives means nobody used it.
"""

import logging
from typing import Dict, Iterable, Optional

from door_dialer.metrics import Metrics
from door_dialer.store.models import Authorization, Person

logger = logging.getLogger(__name__)


class AuthorizationCache:
    """Maps authorization ids to the person each one belongs to.

    Not scoped to a location: it holds whatever the change feed delivers.
    """

    def __init__(self, metrics: Metrics) -> None:
        """Initialize an empty cache.

        Args:
            metrics: Metrics sink for the "received" counter
        """
        self._metrics = metrics
        self._people: Dict[str, Person] = {}

    def seed(self, authorizations: Iterable[Authorization]) -> None:
        """Populate the cache from a full fetch at startup."""
        count = 0
        for authorization in authorizations:
            self._people[authorization.id] = authorization.person
            self._metrics.increment_received()
            count += 1
        logger.info("Seeded %d outstanding authorization(s)", count)

    def on_insert(self, authorization_id: str, person: Person) -> None:
        """Track a newly created authorization."""
        self._people[authorization_id] = person
        self._metrics.increment_received()
        logger.debug("Stored new authorization for %s in local map", person.name)

    def on_delete(self, authorization_id: str) -> Optional[Person]:
        """Forget a deleted authorization.

        Returns:
            The person if the authorization was still cached (it expired
            unused), or None if it had already been consumed
        """
        return self._people.pop(authorization_id, None)

    def remove(self, authorization_id: str) -> None:
        """Forget an authorization that is being consumed."""
        self._people.pop(authorization_id, None)

    def get(self, authorization_id: str) -> Optional[Person]:
        """Look up the person for an authorization id."""
        return self._people.get(authorization_id)

    def __contains__(self, authorization_id: object) -> bool:
        return authorization_id in self._people

    def __len__(self) -> int:
        return len(self._people)
