"""Tests for the notification dispatchers."""

import asyncio
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest
from twilio.base.exceptions import TwilioException, TwilioRestException

from door_dialer.notify import InMemoryDispatcher, SentMessage
from door_dialer.notify.twilio_dispatcher import TwilioDispatcher


@pytest.fixture
def twilio_client() -> Mock:
    """Create a mock twilio Client with an async messages API."""
    client = Mock()
    client.messages.create_async = AsyncMock(return_value=Mock(sid="SM123"))
    return client


@pytest.mark.asyncio
async def test_in_memory_records_messages() -> None:
    """Test that the in-memory dispatcher records what it is given."""
    dispatcher = InMemoryDispatcher()

    assert await dispatcher.send("+1555", "+1000", "hello") is True

    assert dispatcher.sent == [SentMessage(to_phone="+1555", from_number="+1000", body="hello")]
    assert dispatcher.messages_to("+1555") == ["hello"]


@pytest.mark.asyncio
async def test_in_memory_fail_numbers() -> None:
    """Test that configured numbers report failure and aren't recorded."""
    dispatcher = InMemoryDispatcher(fail_numbers=["+1555"])

    assert await dispatcher.send("+1555", "+1000", "hello") is False
    assert dispatcher.sent == []


@pytest.mark.asyncio
async def test_twilio_send(twilio_client: Mock) -> None:
    """Test that messages go through the Messages API."""
    dispatcher = TwilioDispatcher("ACxxx", "token", client=twilio_client)

    assert await dispatcher.send("+1555", "+1000", "Just let you in!") is True

    twilio_client.messages.create_async.assert_awaited_once_with(
        to="+1555", from_="+1000", body="Just let you in!"
    )


@pytest.mark.asyncio
async def test_twilio_rest_error(twilio_client: Mock) -> None:
    """Test that a rejected message reports failure instead of raising."""
    twilio_client.messages.create_async.side_effect = TwilioRestException(
        status=400, uri="/Messages", msg="Invalid 'To' number", code=21211
    )
    dispatcher = TwilioDispatcher("ACxxx", "token", client=twilio_client)

    assert await dispatcher.send("bogus", "+1000", "hi") is False


@pytest.mark.asyncio
async def test_twilio_client_error(twilio_client: Mock) -> None:
    """Test that other twilio errors report failure too."""
    twilio_client.messages.create_async.side_effect = TwilioException("connection reset")
    dispatcher = TwilioDispatcher("ACxxx", "token", client=twilio_client)

    assert await dispatcher.send("+1555", "+1000", "hi") is False


@pytest.mark.asyncio
async def test_twilio_connection_error(twilio_client: Mock) -> None:
    """Test that an unreachable API reports failure instead of raising."""
    twilio_client.messages.create_async.side_effect = aiohttp.ClientConnectionError("down")
    dispatcher = TwilioDispatcher("ACxxx", "token", client=twilio_client)

    assert await dispatcher.send("+1555", "+1000", "hi") is False


@pytest.mark.asyncio
async def test_twilio_timeout(twilio_client: Mock) -> None:
    """Test that a timed-out request reports failure instead of raising."""
    twilio_client.messages.create_async.side_effect = asyncio.TimeoutError()
    dispatcher = TwilioDispatcher("ACxxx", "token", client=twilio_client)

    assert await dispatcher.send("+1555", "+1000", "hi") is False


@pytest.mark.asyncio
async def test_twilio_close_without_async_client(twilio_client: Mock) -> None:
    """Test that closing with an injected client is harmless."""
    dispatcher = TwilioDispatcher("ACxxx", "token", client=twilio_client)
    await dispatcher.close()
