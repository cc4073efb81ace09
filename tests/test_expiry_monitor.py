"""Tests for ExpiryMonitor."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from conftest import ALICE, BOB, LOCATION

from door_dialer.authorization_cache import AuthorizationCache
from door_dialer.expiry_monitor import ExpiryMonitor
from door_dialer.metrics import Metrics
from door_dialer.notify import (
    MISSED_MESSAGE,
    InMemoryDispatcher,
    NotificationDispatcher,
    Notifier,
)
from door_dialer.store import ChangeEvent, ChangeType, InMemoryAuthorizationStore, StoreError


@pytest.fixture
def monitor(
    store: InMemoryAuthorizationStore,
    cache: AuthorizationCache,
    notifier: Notifier,
    metrics: Metrics,
) -> ExpiryMonitor:
    """Create an ExpiryMonitor with in-memory collaborators."""
    return ExpiryMonitor(LOCATION, store, cache, notifier, metrics)


@pytest.mark.asyncio
async def test_seed_loads_pending(
    monitor: ExpiryMonitor, store: InMemoryAuthorizationStore, cache: AuthorizationCache
) -> None:
    """Test that seeding loads the location's authorizations into the cache."""
    auth = store.add_authorization(ALICE, LOCATION)
    store.add_authorization(BOB, "elsewhere")

    await monitor.seed()

    assert len(cache) == 1
    assert auth.id in cache


@pytest.mark.asyncio
async def test_seed_store_error(monitor: ExpiryMonitor, store: InMemoryAuthorizationStore) -> None:
    """Test that a failing seed query propagates."""
    store.fail_next("find_pending")
    with pytest.raises(StoreError):
        await monitor.seed()


@pytest.mark.asyncio
async def test_expired_unused_sends_missed(
    monitor: ExpiryMonitor,
    cache: AuthorizationCache,
    dispatcher: InMemoryDispatcher,
    metrics: Metrics,
    make_authorization,
) -> None:
    """Test that an authorization deleted while still cached is reported as missed."""
    auth = make_authorization("a1", ALICE)

    await monitor.handle_event(ChangeEvent.insert(auth))
    await monitor.handle_event(ChangeEvent.delete("a1"))

    assert dispatcher.messages_to(ALICE.phone) == [MISSED_MESSAGE]
    assert metrics.missed == 1
    assert "a1" not in cache


@pytest.mark.asyncio
async def test_consumed_delete_is_silent(
    monitor: ExpiryMonitor,
    cache: AuthorizationCache,
    dispatcher: InMemoryDispatcher,
    metrics: Metrics,
    make_authorization,
) -> None:
    """Test that the delete of a consumed authorization sends nothing."""
    await monitor.handle_event(ChangeEvent.insert(make_authorization("a1", ALICE)))
    cache.remove("a1")

    await monitor.handle_event(ChangeEvent.delete("a1"))

    assert dispatcher.sent == []
    assert metrics.missed == 0


@pytest.mark.asyncio
async def test_insert_without_document_ignored(
    monitor: ExpiryMonitor, cache: AuthorizationCache
) -> None:
    """Test that an insert event missing its document is skipped."""
    await monitor.handle_event(ChangeEvent(ChangeType.INSERT, "x"))
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_run_follows_change_feed(
    monitor: ExpiryMonitor,
    store: InMemoryAuthorizationStore,
    dispatcher: InMemoryDispatcher,
    metrics: Metrics,
) -> None:
    """Test that the watch loop turns a TTL expiry into one missed message."""
    task = asyncio.create_task(monitor.run())
    await asyncio.sleep(0)

    auth = store.add_authorization(ALICE, LOCATION)
    store.simulate_expiry(auth.id)
    await store.close()
    await asyncio.wait_for(task, timeout=1.0)

    assert metrics.received == 1
    assert metrics.missed == 1
    assert dispatcher.messages_to(ALICE.phone) == [MISSED_MESSAGE]


@pytest.mark.asyncio
async def test_run_survives_notification_error(
    store: InMemoryAuthorizationStore,
    cache: AuthorizationCache,
    metrics: Metrics,
) -> None:
    """Test that a send that raises doesn't stop the watch loop."""
    dispatcher = AsyncMock(spec=NotificationDispatcher)
    dispatcher.send.side_effect = [ConnectionError("down"), True]
    monitor = ExpiryMonitor(LOCATION, store, cache, Notifier(dispatcher, "+15550000000"), metrics)
    task = asyncio.create_task(monitor.run())
    await asyncio.sleep(0)

    first = store.add_authorization(ALICE, LOCATION)
    store.simulate_expiry(first.id)
    second = store.add_authorization(BOB, LOCATION)
    store.simulate_expiry(second.id)
    for _ in range(10):
        await asyncio.sleep(0)

    assert not task.done()
    assert metrics.missed == 2
    assert dispatcher.send.await_count == 2
    assert len(cache) == 0

    await store.close()
    await asyncio.wait_for(task, timeout=1.0)


@pytest.mark.asyncio
async def test_run_raises_on_feed_failure(
    monitor: ExpiryMonitor, store: InMemoryAuthorizationStore
) -> None:
    """Test that a change feed failure ends the loop with StoreError."""
    task = asyncio.create_task(monitor.run())
    await asyncio.sleep(0)

    store.fail_watch()

    with pytest.raises(StoreError):
        await asyncio.wait_for(task, timeout=1.0)
