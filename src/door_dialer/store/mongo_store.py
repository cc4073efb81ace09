"""MongoDB-backed authorization store.

This module provides a store implementation using pymongo's asyncio API.
Authorizations live in the ``authorizations`` collection and expire through
a TTL index on their creation time; per-location settings live in the
``settings`` collection.
"""

import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, List, Mapping, Optional, Sequence

from bson import ObjectId
from pymongo import AsyncMongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from door_dialer.store.authorization_store import AuthorizationStore, StoreError
from door_dialer.store.models import (
    AUTHORIZATION_TTL_SECONDS,
    Authorization,
    ChangeEvent,
    LocationSettings,
    Person,
)

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "door-control"
AUTHORIZATIONS_COLLECTION = "authorizations"
SETTINGS_COLLECTION = "settings"

_WATCH_PIPELINE = [{"$match": {"operationType": {"$in": ["insert", "delete"]}}}]


class MongoAuthorizationStore(AuthorizationStore):
    """Authorization store using MongoDB through pymongo's AsyncMongoClient."""

    def __init__(
        self,
        url: str,
        database: str = DEFAULT_DATABASE,
        client: Optional[Any] = None,
    ) -> None:
        """Initialize the store (connections are made lazily by the driver).

        Args:
            url: MongoDB connection string
            database: Database name
            client: Pre-built client to use instead of connecting to url
        """
        self._client = client if client is not None else AsyncMongoClient(url, tz_aware=True)
        db = self._client[database]
        self._authorizations = db[AUTHORIZATIONS_COLLECTION]
        self._settings = db[SETTINGS_COLLECTION]
        logger.debug("MongoAuthorizationStore initialized (database: %s)", database)

    async def ensure_indexes(self) -> None:
        """Create the TTL index that expires authorizations after 6 minutes."""
        try:
            await self._authorizations.create_index(
                "at", expireAfterSeconds=AUTHORIZATION_TTL_SECONDS
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to create TTL index: {e}") from e
        logger.info("Authorization TTL index ensured (%ds)", AUTHORIZATION_TTL_SECONDS)

    async def initialize(self) -> None:
        """Ensure indexes exist."""
        await self.ensure_indexes()

    async def find_pending(self, location_id: str) -> List[Authorization]:
        """Get all authorizations for a location."""
        logger.debug("Retrieving authorizations for location %s", location_id)
        try:
            docs = await self._authorizations.find({"for": location_id}).to_list(None)
        except PyMongoError as e:
            raise StoreError(f"Failed to query authorizations: {e}") from e

        logger.debug("Retrieved %d authorization(s)", len(docs))
        return [Authorization.from_document(doc) for doc in docs]

    async def find_settings(self, location_id: str) -> Optional[LocationSettings]:
        """Get the settings document for a location."""
        logger.debug("Retrieving settings for location %s", location_id)
        try:
            doc = await self._settings.find_one({"_id": location_id})
        except PyMongoError as e:
            raise StoreError(f"Failed to query settings: {e}") from e

        if doc is None:
            return None
        return LocationSettings.from_document(doc)

    async def delete_many(self, authorization_ids: Sequence[str]) -> int:
        """Delete authorizations by hex ObjectId."""
        object_ids = [ObjectId(i) for i in authorization_ids if ObjectId.is_valid(i)]
        if len(object_ids) != len(authorization_ids):
            logger.warning("Skipping invalid authorization id(s) in %s", list(authorization_ids))
        if not object_ids:
            return 0

        try:
            result = await self._authorizations.delete_many({"_id": {"$in": object_ids}})
        except PyMongoError as e:
            raise StoreError(f"Failed to delete authorizations: {e}") from e

        logger.debug("Deleted %d authorization(s)", result.deleted_count)
        return int(result.deleted_count)

    async def watch(self) -> AsyncIterator[ChangeEvent]:
        """Stream insert/delete events from a change stream on the authorizations.

        Requires a replica set (change streams are not available on standalone
        servers).
        """
        try:
            async with await self._authorizations.watch(_WATCH_PIPELINE) as stream:
                async for change in stream:
                    event = self._to_event(change)
                    if event is not None:
                        yield event
        except PyMongoError as e:
            raise StoreError(f"Change stream failed: {e}") from e

    @staticmethod
    def _to_event(change: Mapping[str, Any]) -> Optional[ChangeEvent]:
        operation = change.get("operationType")
        if operation == "insert":
            return ChangeEvent.insert(Authorization.from_document(change["fullDocument"]))
        if operation == "delete":
            return ChangeEvent.delete(str(change["documentKey"]["_id"]))
        logger.debug("Ignoring change stream event: %s", operation)
        return None

    async def upsert_authorization(self, person: Person, location_id: str) -> str:
        """Create an authorization, or refresh 'at' on an existing one.

        Existing authorizations are matched by phone number so that documents
        with a differently ordered or extended person field are refreshed too.
        """
        # person.phone comes from the filter on insert
        on_insert = {
            f"person.{key}": value
            for key, value in person.to_document().items()
            if key != "phone"
        }
        try:
            doc = await self._authorizations.find_one_and_update(
                {"person.phone": person.phone, "for": location_id},
                {"$set": {"at": datetime.now(timezone.utc)}, "$setOnInsert": on_insert},
                projection={"_id": True},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to upsert authorization: {e}") from e

        logger.info("Authorization stored for %s at %s", person.name, location_id)
        return str(doc["_id"])

    async def save_settings(self, settings: LocationSettings) -> None:
        """Create or replace the settings document for a location."""
        try:
            await self._settings.replace_one(
                {"_id": settings.location_id}, settings.to_document(), upsert=True
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to save settings: {e}") from e

    async def close(self) -> None:
        """Close the MongoDB client."""
        await self._client.close()
