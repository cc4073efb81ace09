"""Authorization store abstraction and implementations."""

from door_dialer.store.authorization_store import AuthorizationStore, StoreError
from door_dialer.store.in_memory_store import InMemoryAuthorizationStore
from door_dialer.store.models import (
    Authorization,
    ChangeEvent,
    ChangeType,
    LocationSettings,
    Person,
)

__all__ = [
    "Authorization",
    "AuthorizationStore",
    "ChangeEvent",
    "ChangeType",
    "InMemoryAuthorizationStore",
    "LocationSettings",
    "Person",
    "StoreError",
]
