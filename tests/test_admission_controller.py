"""Tests for AdmissionController."""

import asyncio
from typing import AsyncIterator, Tuple
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from conftest import ADMIN_NUMBER, ALICE, BOB, CAROL, LOCATION

from door_dialer.admission_controller import AdmissionController
from door_dialer.authorization_cache import AuthorizationCache
from door_dialer.expiry_monitor import ExpiryMonitor
from door_dialer.metrics import Metrics
from door_dialer.modem import MockSerialPort, ModemLine, ModemState
from door_dialer.notify import LET_IN_MESSAGE, MISSED_MESSAGE, InMemoryDispatcher, Notifier
from door_dialer.store import ChangeEvent, InMemoryAuthorizationStore

DIAL_SEQUENCE = "9,"


@pytest_asyncio.fixture
async def running_modem() -> AsyncIterator[Tuple[ModemLine, MockSerialPort]]:
    """Provide an opened ModemLine whose read loop is running."""
    port = MockSerialPort()
    modem = ModemLine(port)
    await modem.open()
    port.written.clear()
    task = asyncio.create_task(modem.run())

    yield modem, port

    modem.close()
    await asyncio.wait_for(task, timeout=1.0)


@pytest.fixture
def controller(
    running_modem: Tuple[ModemLine, MockSerialPort],
    store: InMemoryAuthorizationStore,
    cache: AuthorizationCache,
    notifier: Notifier,
    metrics: Metrics,
) -> AdmissionController:
    """Create an AdmissionController wired to the running modem."""
    modem, _ = running_modem
    admission = AdmissionController(
        location_id=LOCATION,
        dial_sequence=DIAL_SEQUENCE,
        modem=modem,
        store=store,
        cache=cache,
        notifier=notifier,
        metrics=metrics,
    )
    modem.set_on_ring(admission.on_ring)
    return admission


async def _wait_for_dial(port: MockSerialPort) -> None:
    for _ in range(100):
        if any(line.startswith("ATDT") for line in port.written):
            return
        await asyncio.sleep(0)
    raise AssertionError("modem was never asked to dial")


@pytest.mark.asyncio
async def test_ring_without_authorizations(
    controller: AdmissionController,
    running_modem: Tuple[ModemLine, MockSerialPort],
    metrics: Metrics,
) -> None:
    """Test that a ring with nothing pending doesn't answer the call."""
    modem, port = running_modem

    task = controller.on_ring()
    assert task is not None
    await task

    assert port.written == []
    assert modem.state == ModemState.IDLE
    assert not controller.is_busy
    assert metrics.activated == 0


# pylint: disable=too-many-arguments,too-many-positional-arguments


@pytest.mark.asyncio
async def test_admits_all_pending(
    controller: AdmissionController,
    running_modem: Tuple[ModemLine, MockSerialPort],
    store: InMemoryAuthorizationStore,
    cache: AuthorizationCache,
    dispatcher: InMemoryDispatcher,
    metrics: Metrics,
) -> None:
    """Test a full admission: dial, wait for OK, hang up, consume everything."""
    modem, port = running_modem
    auths = [store.add_authorization(p, LOCATION) for p in (ALICE, BOB, CAROL)]
    for auth in auths:
        cache.on_insert(auth.id, auth.person)

    task = controller.on_ring()
    assert task is not None
    await _wait_for_dial(port)

    # Still waiting for the modem to acknowledge
    assert controller.is_busy
    assert modem.state == ModemState.TRIGGERING
    assert port.written == ["ATDT9,;"]

    port.feed_line("OK")
    await asyncio.wait_for(task, timeout=1.0)

    assert port.written == ["ATDT9,;", "ATH"]
    assert modem.state == ModemState.IDLE
    assert not controller.is_busy
    assert len(store) == 0
    assert len(cache) == 0
    assert metrics.activated == 3

    for person in (ALICE, BOB, CAROL):
        assert dispatcher.messages_to(person.phone) == [LET_IN_MESSAGE]
    assert dispatcher.messages_to(ADMIN_NUMBER) == [
        "I just let the following people in: Alice,Bob"
    ]


@pytest.mark.asyncio
async def test_consumed_authorizations_are_not_missed(
    controller: AdmissionController,
    running_modem: Tuple[ModemLine, MockSerialPort],
    store: InMemoryAuthorizationStore,
    cache: AuthorizationCache,
    notifier: Notifier,
    dispatcher: InMemoryDispatcher,
    metrics: Metrics,
) -> None:
    """Test that delete events for consumed authorizations send no missed message."""
    _, port = running_modem
    monitor = ExpiryMonitor(LOCATION, store, cache, notifier, metrics)
    feed = store.watch()

    for person in (ALICE, BOB, CAROL):
        store.add_authorization(person, LOCATION)

    task = controller.on_ring()
    assert task is not None
    # Drain the three inserts before the cycle consumes them
    for _ in range(3):
        await monitor.handle_event(await feed.__anext__())
    await _wait_for_dial(port)
    port.feed_line("OK")
    await asyncio.wait_for(task, timeout=1.0)

    # And the three deletes the cycle caused
    for _ in range(3):
        event: ChangeEvent = await feed.__anext__()
        await monitor.handle_event(event)

    assert metrics.missed == 0
    for person in (ALICE, BOB, CAROL):
        assert MISSED_MESSAGE not in dispatcher.messages_to(person.phone)


@pytest.mark.asyncio
async def test_rings_while_busy_are_dropped(
    controller: AdmissionController,
    running_modem: Tuple[ModemLine, MockSerialPort],
    store: InMemoryAuthorizationStore,
) -> None:
    """Test that only one admission cycle's commands are ever in flight."""
    _, port = running_modem
    store.add_authorization(ALICE, LOCATION)

    task = controller.on_ring()
    assert task is not None
    for _ in range(5):
        assert controller.on_ring() is None
        port.feed_line("RING")

    await _wait_for_dial(port)
    await asyncio.sleep(0)
    assert port.written == ["ATDT9,;"]

    port.feed_line("OK")
    await asyncio.wait_for(task, timeout=1.0)
    assert port.written == ["ATDT9,;", "ATH"]
    assert not controller.is_busy


@pytest.mark.asyncio
async def test_ring_after_cycle_starts_new_cycle(
    controller: AdmissionController,
    running_modem: Tuple[ModemLine, MockSerialPort],
    store: InMemoryAuthorizationStore,
) -> None:
    """Test that the busy flag is released for the next ring."""
    _, port = running_modem
    first = controller.on_ring()
    assert first is not None
    await first

    store.add_authorization(ALICE, LOCATION)
    second = controller.on_ring()
    assert second is not None
    await _wait_for_dial(port)
    port.feed_line("OK")
    await asyncio.wait_for(second, timeout=1.0)

    assert port.written == ["ATDT9,;", "ATH"]


@pytest.mark.asyncio
async def test_find_pending_failure(
    controller: AdmissionController,
    running_modem: Tuple[ModemLine, MockSerialPort],
    store: InMemoryAuthorizationStore,
    metrics: Metrics,
) -> None:
    """Test that a failed lookup counts a store error and releases busy."""
    _, port = running_modem
    store.add_authorization(ALICE, LOCATION)
    store.fail_next("find_pending")

    task = controller.on_ring()
    assert task is not None
    await task

    assert metrics.store_errors == 1
    assert not controller.is_busy
    assert port.written == []
    assert len(store) == 1


@pytest.mark.asyncio
async def test_delete_failure_still_opens_door(
    controller: AdmissionController,
    running_modem: Tuple[ModemLine, MockSerialPort],
    store: InMemoryAuthorizationStore,
    dispatcher: InMemoryDispatcher,
    metrics: Metrics,
) -> None:
    """Test that a failed expiry is counted but doesn't stop the admission."""
    _, port = running_modem
    store.add_authorization(ALICE, LOCATION)
    store.fail_next("delete_many")

    task = controller.on_ring()
    assert task is not None
    await _wait_for_dial(port)
    port.feed_line("OK")
    await asyncio.wait_for(task, timeout=1.0)

    assert port.written == ["ATDT9,;", "ATH"]
    assert metrics.store_errors == 1
    assert metrics.activated == 1
    assert dispatcher.messages_to(ALICE.phone) == [LET_IN_MESSAGE]
    assert not controller.is_busy


@pytest.mark.asyncio
async def test_settings_failure_aborts_before_dial(
    controller: AdmissionController,
    running_modem: Tuple[ModemLine, MockSerialPort],
    store: InMemoryAuthorizationStore,
    metrics: Metrics,
) -> None:
    """Test that a failed settings lookup aborts the cycle without dialing."""
    _, port = running_modem
    store.add_authorization(ALICE, LOCATION)
    store.fail_next("find_settings")

    task = controller.on_ring()
    assert task is not None
    await task

    assert port.written == []
    assert metrics.store_errors == 1
    assert not controller.is_busy


@pytest.mark.asyncio
async def test_unclassified_error_not_counted(
    store: InMemoryAuthorizationStore,
    cache: AuthorizationCache,
    notifier: Notifier,
    metrics: Metrics,
) -> None:
    """Test that non-store errors are logged, not counted, and release busy."""
    # Never opened, so trigger_dial raises ModemError
    modem = ModemLine(MockSerialPort())
    admission = AdmissionController(LOCATION, DIAL_SEQUENCE, modem, store, cache, notifier, metrics)
    store.add_authorization(ALICE, LOCATION)

    task = admission.on_ring()
    assert task is not None
    await task

    assert metrics.store_errors == 0
    assert metrics.activated == 0
    assert not admission.is_busy


@pytest.mark.asyncio
async def test_side_tasks_joined_before_release(
    running_modem: Tuple[ModemLine, MockSerialPort],
    store: InMemoryAuthorizationStore,
    cache: AuthorizationCache,
    metrics: Metrics,
) -> None:
    """Test that busy stays set until notification has finished."""
    modem, port = running_modem
    release = asyncio.Event()

    async def slow_notify(*_args: object) -> None:
        await release.wait()

    notifier = AsyncMock(spec=Notifier)
    notifier.notify_admitted.side_effect = slow_notify
    admission = AdmissionController(LOCATION, DIAL_SEQUENCE, modem, store, cache, notifier, metrics)
    store.add_authorization(ALICE, LOCATION)

    task = admission.on_ring()
    assert task is not None
    await _wait_for_dial(port)
    port.feed_line("OK")
    for _ in range(10):
        await asyncio.sleep(0)

    assert "ATH" in port.written
    assert admission.is_busy

    release.set()
    await asyncio.wait_for(task, timeout=1.0)
    assert not admission.is_busy
    notifier.notify_admitted.assert_awaited_once()
