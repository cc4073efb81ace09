"""FastAPI application for the SMS webhook, metrics and status endpoints."""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST
from twilio.request_validator import RequestValidator
from twilio.twiml.messaging_response import MessagingResponse

from door_dialer import __version__
from door_dialer.admission_controller import AdmissionController
from door_dialer.authorization_cache import AuthorizationCache
from door_dialer.metrics import Metrics
from door_dialer.modem.modem_line import ModemLine
from door_dialer.store.authorization_store import AuthorizationStore, StoreError
from door_dialer.web.models import StatusResponse

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Hi, {name}! Dial {access_number} at {location}'s entrance within the next "
    "5 minutes and I'll let you in :)"
)
UNKNOWN_SENDER_MESSAGE = "Hi there! I didn't understand that."
SIGNATURE_HEADER = "X-Twilio-Signature"


def _twiml_reply(text: str) -> Response:
    twiml = MessagingResponse()
    twiml.message(text)
    return Response(content=str(twiml), media_type="text/xml")


def create_app(  # pylint: disable=too-many-arguments,too-many-positional-arguments
    controller: AdmissionController,
    modem: ModemLine,
    cache: AuthorizationCache,
    store: AuthorizationStore,
    metrics: Metrics,
    location_id: str,
    twilio_auth_token: Optional[str] = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        controller: AdmissionController instance
        modem: ModemLine instance
        cache: AuthorizationCache instance
        store: Store the webhook writes authorizations to
        metrics: Metrics exposed on /metrics
        location_id: Location this process controls
        twilio_auth_token: If set, webhook requests must carry a valid Twilio signature

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Door Dialer",
        description="SMS-authorized building access through a dial-up modem",
        version=__version__,
    )

    app.state.controller = controller
    app.state.modem = modem
    app.state.cache = cache
    app.state.store = store
    app.state.metrics = metrics
    validator = RequestValidator(twilio_auth_token) if twilio_auth_token else None

    @app.get("/api/status")
    async def get_status() -> StatusResponse:
        """Get current admission and modem state."""
        return StatusResponse(
            location_id=location_id,
            busy=app.state.controller.is_busy,
            modem_state=app.state.modem.state.value,
            cached_authorizations=len(app.state.cache),
        )

    @app.get("/metrics")
    async def get_metrics() -> Response:
        """Prometheus scrape endpoint."""
        return Response(content=app.state.metrics.render(), media_type=CONTENT_TYPE_LATEST)

    @app.post("/sms")
    async def receive_sms(
        request: Request,
        location: str = Query(..., alias="id", min_length=1),
    ) -> Response:
        """Handle Twilio's incoming-message webhook.

        Texts from an allowed person create (or refresh) an authorization
        for the location given in the ``id`` query parameter.
        """
        form = await request.form()
        params = {key: str(value) for key, value in form.items()}

        if validator is not None:
            signature = request.headers.get(SIGNATURE_HEADER, "")
            if not validator.validate(str(request.url), params, signature):
                logger.warning("Rejected webhook request with invalid signature")
                raise HTTPException(status_code=403, detail="Invalid Twilio signature")

        sender = params.get("From", "")
        try:
            settings = await app.state.store.find_settings(location)
            person = settings.find_person(sender) if settings else None
            if person is None or settings is None:
                logger.info("Text from unknown number %s for %s", sender, location)
                return _twiml_reply(UNKNOWN_SENDER_MESSAGE)

            await app.state.store.upsert_authorization(person, location)
        except StoreError as e:
            logger.error("Store error handling text from %s: %s", sender, e)
            raise HTTPException(status_code=503, detail="Authorization store unavailable") from e

        logger.info("Authorized %s for %s", person.name, location)
        return _twiml_reply(
            WELCOME_MESSAGE.format(
                name=person.name,
                access_number=settings.access_number or "the call box",
                location=location.capitalize(),
            )
        )

    return app
