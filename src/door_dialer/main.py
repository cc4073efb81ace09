"""Main entry point for the Door Dialer."""

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from typing import Any, List, NoReturn, Optional, Sequence

from door_dialer import __version__
from door_dialer.admission_controller import AdmissionController
from door_dialer.authorization_cache import AuthorizationCache
from door_dialer.config import ConfigError, ConfigManager
from door_dialer.expiry_monitor import ExpiryMonitor
from door_dialer.metrics import Metrics
from door_dialer.modem import DeviceError, ModemLine, get_serial_port
from door_dialer.modem.serial_port import DEFAULT_BAUD_RATE
from door_dialer.notify import InMemoryDispatcher, NotificationDispatcher, Notifier
from door_dialer.store import AuthorizationStore, InMemoryAuthorizationStore, StoreError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


@dataclass
class Components:  # pylint: disable=too-many-instance-attributes
    """Container for the wired-up door dialer components."""

    location_id: str
    metrics: Metrics
    store: AuthorizationStore
    dispatcher: NotificationDispatcher
    cache: AuthorizationCache
    modem: ModemLine
    controller: AdmissionController
    monitor: ExpiryMonitor


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the application.

    Args:
        debug: If True, set log level to DEBUG, otherwise INFO
    """
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed command-line arguments
    """
    parser = argparse.ArgumentParser(
        description="Door Dialer - let people into a building through a dial-up modem"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use a mock modem, in-memory store and in-memory SMS (for testing)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config.yml",
        help="Path to configuration file (default: config.yml)",
    )
    return parser.parse_args(argv)


def _load_config(config_path: str) -> ConfigManager:
    """Load and validate configuration.

    Raises:
        SystemExit: If configuration is invalid
    """
    try:
        config = ConfigManager(user_config_path=config_path)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(EXIT_FAILURE)

    logger.info("Location: %s", config.get_location_id())
    logger.info("Dial sequence: %s", config.get_dial_sequence())
    logger.debug("Configuration: %s", config.to_dict_safe())
    return config


def _init_store(config: ConfigManager, mock_mode: bool) -> AuthorizationStore:
    """Initialize the authorization store.

    Raises:
        ConfigError: If the store is not configured
    """
    store_config = config.get_store_config()
    if mock_mode:
        logger.info("  - Using InMemoryAuthorizationStore (mock mode)")
        return InMemoryAuthorizationStore()

    if not store_config.get("url"):
        raise ConfigError("Missing required setting: store.url")

    # pylint: disable=import-outside-toplevel
    from door_dialer.store.mongo_store import DEFAULT_DATABASE, MongoAuthorizationStore

    logger.info("  - Using MongoAuthorizationStore")
    return MongoAuthorizationStore(
        url=store_config["url"],
        database=store_config.get("database", DEFAULT_DATABASE),
    )


def _init_dispatcher(config: ConfigManager, mock_mode: bool) -> NotificationDispatcher:
    """Initialize the SMS dispatcher.

    Raises:
        ConfigError: If Twilio is not configured
    """
    twilio_config = config.get_twilio_config()
    if mock_mode:
        logger.info("  - Using InMemoryDispatcher (mock mode)")
        return InMemoryDispatcher()

    for key in ("account_sid", "auth_token", "phone"):
        if not twilio_config.get(key):
            raise ConfigError(f"Missing required setting: twilio.{key}")

    # pylint: disable=import-outside-toplevel
    from door_dialer.notify.twilio_dispatcher import TwilioDispatcher

    logger.info("  - Using TwilioDispatcher")
    return TwilioDispatcher(twilio_config["account_sid"], twilio_config["auth_token"])


def build_components(config: ConfigManager, mock_mode: bool) -> Components:
    """Create and wire every component.

    Args:
        config: Configuration manager
        mock_mode: If True, use mock/in-memory collaborators

    Returns:
        Components with the ring callback already connected

    Raises:
        ConfigError: If a required collaborator is not configured
        DeviceError: If no serial port is configured
    """
    location_id = config.get_location_id()
    metrics = Metrics()
    store = _init_store(config, mock_mode)
    dispatcher = _init_dispatcher(config, mock_mode)
    notifier = Notifier(dispatcher, config.get("twilio.phone", ""))
    cache = AuthorizationCache(metrics)

    serial_config = config.get_serial_config()
    port = get_serial_port(
        mock=mock_mode,
        path=serial_config.get("port"),
        baud_rate=serial_config.get("baud_rate", DEFAULT_BAUD_RATE),
    )
    modem = ModemLine(port)
    logger.info("  - ModemLine initialized")

    controller = AdmissionController(
        location_id=location_id,
        dial_sequence=config.get_dial_sequence(),
        modem=modem,
        store=store,
        cache=cache,
        notifier=notifier,
        metrics=metrics,
    )
    modem.set_on_ring(controller.on_ring)
    logger.info("  - AdmissionController initialized")

    monitor = ExpiryMonitor(location_id, store, cache, notifier, metrics)

    return Components(
        location_id=location_id,
        metrics=metrics,
        store=store,
        dispatcher=dispatcher,
        cache=cache,
        modem=modem,
        controller=controller,
        monitor=monitor,
    )


def _start_web_server(components: Components, config: ConfigManager) -> "asyncio.Task[None]":
    """Start the web endpoints as a task on the running loop."""
    # pylint: disable=import-outside-toplevel
    import uvicorn

    from door_dialer.web.app import create_app

    auth_token = None
    if config.get("web.validate_signature", True):
        auth_token = config.get("twilio.auth_token")

    web_app = create_app(
        controller=components.controller,
        modem=components.modem,
        cache=components.cache,
        store=components.store,
        metrics=components.metrics,
        location_id=components.location_id,
        twilio_auth_token=auth_token,
    )
    host = config.get("web.host", "0.0.0.0")
    port = config.get("web.port", 8080)
    server = uvicorn.Server(
        uvicorn.Config(web_app, host=host, port=port, log_level="warning")
    )

    logger.info("  - Web endpoints started at http://%s:%d", host, port)
    return asyncio.create_task(server.serve(), name="web")


async def run(components: Components, config: ConfigManager) -> int:
    """Run the door dialer until the modem closes, fails, or a signal arrives.

    Returns:
        Process exit status
    """
    try:
        await components.store.initialize()
        await components.monitor.seed()
    except StoreError as e:
        logger.error("Failed to load authorizations: %s", e)
        await components.store.close()
        return EXIT_FAILURE

    try:
        await components.modem.open()
    except DeviceError as e:
        logger.error("Failed to open modem: %s", e)
        await components.store.close()
        return EXIT_FAILURE

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, shutdown.set)

    modem_task = asyncio.create_task(components.modem.run(), name="modem")
    feed_task = asyncio.create_task(components.monitor.run(), name="change-feed")
    shutdown_task = asyncio.create_task(shutdown.wait(), name="shutdown")
    tasks = [modem_task, feed_task, shutdown_task]
    if config.get("web.enabled", False):
        tasks.append(_start_web_server(components, config))

    logger.info("=" * 60)
    logger.info("Door dialer is ready!")
    logger.info("=" * 60)

    await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.remove_signal_handler(signum)

    status = EXIT_OK
    if shutdown_task.done():
        logger.info("Shutdown requested")
    elif modem_task.done():
        if modem_task.exception() is not None:
            logger.error("Modem failed: %s", modem_task.exception())
            status = EXIT_FAILURE
        else:
            logger.info("Modem closed, shutting down")
    elif feed_task.done():
        error = feed_task.exception()
        logger.error("Authorization change feed stopped: %s", error or "stream ended")
        status = EXIT_FAILURE
    else:
        # uvicorn handles SIGINT/SIGTERM itself while serving
        error = tasks[-1].exception()
        if error is not None:
            logger.error("Web server failed: %s", error)
            status = EXIT_FAILURE
        else:
            logger.info("Web server stopped, shutting down")

    await _shutdown(components, tasks)
    return status


async def _shutdown(components: Components, tasks: Sequence["asyncio.Future[Any]"]) -> None:
    """Perform graceful shutdown."""
    logger.info("Closing modem...")
    components.modem.close()

    for task in tasks:
        if not task.done():
            task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)

    logger.info("Closing store...")
    try:
        await components.store.close()
    except StoreError as e:
        logger.warning("Error closing store: %s", e)

    close_dispatcher = getattr(components.dispatcher, "close", None)
    if close_dispatcher is not None:
        await close_dispatcher()


def main() -> NoReturn:
    """Main application entry point."""
    args = parse_args()
    setup_logging(args.debug)

    logger.info("=" * 60)
    logger.info("Door Dialer v%s", __version__)
    logger.info("=" * 60)

    if args.mock:
        logger.info("Running in MOCK mode (no modem, database or SMS required)")

    config = _load_config(args.config)

    logger.info("Initializing components...")
    try:
        components = build_components(config, args.mock)
    except (ConfigError, DeviceError) as e:
        logger.error("Failed to initialize components: %s", e)
        sys.exit(EXIT_FAILURE)

    status = asyncio.run(run(components, config))
    logger.info("Goodbye!")
    sys.exit(status)


if __name__ == "__main__":
    main()
