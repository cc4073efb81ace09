"""Abstract authorization store interface.

This module provides an abstract base class for the persistence layer that
holds authorizations and per-location settings, allowing for different
implementations (MongoDB, in-memory, etc.).
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional, Sequence

from door_dialer.store.models import Authorization, ChangeEvent, LocationSettings, Person


class StoreError(Exception):
    """Raised when a query or mutation against the store fails."""


class AuthorizationStore(ABC):
    """Abstract base class for authorization store implementations.

    Every backend failure is raised as StoreError.
    """

    @abstractmethod
    async def find_pending(self, location_id: str) -> List[Authorization]:
        """Get all outstanding authorizations for a location.

        Args:
            location_id: Location to query

        Returns:
            Pending authorizations (empty list if none)
        """

    @abstractmethod
    async def find_settings(self, location_id: str) -> Optional[LocationSettings]:
        """Get the settings for a location.

        Args:
            location_id: Location to query

        Returns:
            LocationSettings, or None if the location has none
        """

    @abstractmethod
    async def delete_many(self, authorization_ids: Sequence[str]) -> int:
        """Delete authorizations by id.

        Args:
            authorization_ids: IDs to delete

        Returns:
            Number of authorizations deleted
        """

    @abstractmethod
    def watch(self) -> AsyncIterator[ChangeEvent]:
        """Stream insert/delete events for all authorizations.

        The stream is not filtered by location.
        """

    @abstractmethod
    async def upsert_authorization(self, person: Person, location_id: str) -> str:
        """Create an authorization, or refresh the creation time of an existing one.

        Args:
            person: Person requesting access
            location_id: Location access is requested for

        Returns:
            ID of the created or refreshed authorization
        """

    @abstractmethod
    async def save_settings(self, settings: LocationSettings) -> None:
        """Create or replace the settings for a location."""

    async def initialize(self) -> None:
        """Prepare the backend before first use (indexes, etc.)."""

    async def close(self) -> None:
        """Release any resources held by the store."""
