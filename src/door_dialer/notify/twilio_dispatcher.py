"""Twilio-based notification dispatcher.

This module sends SMS through the twilio SDK using its asyncio HTTP client,
so sending a message never blocks the event loop the modem runs on.
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.async_http_client import AsyncTwilioHttpClient
from twilio.rest import Client

from door_dialer.notify.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


class TwilioDispatcher(NotificationDispatcher):
    """Sends text messages through the Twilio Messages API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        client: Optional[Any] = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            account_sid: Twilio account SID
            auth_token: Twilio auth token
            client: Pre-built twilio Client to use instead of creating one
        """
        if client is None:
            client = Client(account_sid, auth_token, http_client=AsyncTwilioHttpClient())
        self._client = client

    async def send(self, to_phone: str, from_number: str, body: str) -> bool:
        """Send an SMS, reporting Twilio and network errors as a failed send."""
        logger.debug("Sending message to %s", to_phone)
        try:
            message = await self._client.messages.create_async(
                to=to_phone, from_=from_number, body=body
            )
        except TwilioRestException as e:
            logger.error("Twilio rejected message to %s: %s (code %s)", to_phone, e.msg, e.code)
            return False
        except TwilioException as e:
            logger.error("Failed to send message to %s: %s", to_phone, e)
            return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Could not reach Twilio to message %s: %r", to_phone, e)
            return False

        logger.debug("Sent message to %s (sid: %s)", to_phone, message.sid)
        return True

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        http_client = getattr(self._client, "http_client", None)
        if isinstance(http_client, AsyncTwilioHttpClient):
            await http_client.close()
