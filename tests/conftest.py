"""Shared pytest fixtures for all tests."""

from datetime import datetime, timezone
from typing import Callable

import pytest

from door_dialer.authorization_cache import AuthorizationCache
from door_dialer.metrics import Metrics
from door_dialer.modem import MockSerialPort, ModemLine
from door_dialer.notify import InMemoryDispatcher, Notifier
from door_dialer.store import Authorization, InMemoryAuthorizationStore, LocationSettings, Person

LOCATION = "home"
SERVICE_NUMBER = "+15550000000"
ADMIN_NUMBER = "+15559990000"

ALICE = Person(name="Alice", phone="+15551110001")
BOB = Person(name="Bob", phone="+15551110002")
CAROL = Person(name="Carol", phone="+15551110003", no_notify=True)


@pytest.fixture
def metrics() -> Metrics:
    """Provide a Metrics instance with its own registry."""
    return Metrics()


@pytest.fixture
def store() -> InMemoryAuthorizationStore:
    """Provide an in-memory store with settings for the test location."""
    memory_store = InMemoryAuthorizationStore()
    memory_store.add_settings(
        LocationSettings(
            location_id=LOCATION,
            allowed_people=[ALICE, BOB, CAROL],
            notify_numbers=[ADMIN_NUMBER],
            access_number="+15552223333",
        )
    )
    return memory_store


@pytest.fixture
def dispatcher() -> InMemoryDispatcher:
    """Provide a dispatcher that records messages."""
    return InMemoryDispatcher()


@pytest.fixture
def notifier(dispatcher: InMemoryDispatcher) -> Notifier:
    """Provide a Notifier sending through the in-memory dispatcher."""
    return Notifier(dispatcher, SERVICE_NUMBER)


@pytest.fixture
def cache(metrics: Metrics) -> AuthorizationCache:
    """Provide an empty authorization cache."""
    return AuthorizationCache(metrics)


@pytest.fixture
def serial_port() -> MockSerialPort:
    """Provide a mock serial port."""
    return MockSerialPort()


@pytest.fixture
def modem(serial_port: MockSerialPort) -> ModemLine:
    """Provide a ModemLine on the mock serial port (not opened)."""
    return ModemLine(serial_port)


@pytest.fixture
def make_authorization() -> Callable[..., Authorization]:
    """Build Authorization objects without a store."""

    def _make(auth_id: str, person: Person = ALICE, location_id: str = LOCATION) -> Authorization:
        return Authorization(
            id=auth_id,
            person=person,
            at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
            location_id=location_id,
        )

    return _make
