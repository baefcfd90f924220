"""Main entry point for slackonos."""

import asyncio
import logging
import signal
import sys

import structlog
from aiohttp import web


def setup_logging():
    """Configure structured logging."""
    # Configure standard logging first
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(message)s",
        level=logging.INFO,
        stream=sys.stdout
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


async def shutdown(runner, server, *clients):
    """Stop accepting requests, cancel in-flight handlers, then close the clients."""
    await runner.cleanup()
    await server.drain()
    for client in clients:
        await client.close()


async def main():
    """Main async entry point."""
    setup_logging()
    logger = structlog.get_logger()

    from . import __version__
    logger.info("slackonos_starting", version=__version__)

    # Import here to ensure logging is configured first
    from .callbacks import CallbackCorrelator
    from .catalog import SpotifyCatalog
    from .config import get_config
    from .dispatcher import CommandDispatcher, CommandSettings
    from .server import SlackEventServer
    from .slack_client import SlackClient
    from .sonos_controller import SonosController

    config = get_config()
    config.validate()

    player = SonosController(
        config.sonos_ip,
        port=config.sonos_port,
        timeout=config.sonos_timeout,
        market=config.spotify_market,
    )
    catalog = SpotifyCatalog(
        config.spotify_client_id,
        config.spotify_client_secret,
        market=config.spotify_market,
        limit=config.spotify_search_limit,
    )
    replies = SlackClient(config.slack_bot_token)

    dispatcher = CommandDispatcher(player, catalog, replies, CommandSettings.from_config(config))
    correlator = CallbackCorrelator(player, catalog, replies)
    server = SlackEventServer(dispatcher, correlator)

    runner = web.AppRunner(server.build_app())
    await runner.setup()

    # Setup graceful shutdown
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_shutdown, sig)

    try:
        site = web.TCPSite(runner, config.server_host, config.server_port)
        await site.start()
        logger.info(
            "slackonos_listening",
            host=config.server_host,
            port=config.server_port,
            channels=config.channels,
        )

        # Wait for shutdown signal
        await shutdown_event.wait()

    except Exception as e:
        logger.error("server_error", error=str(e))
        raise
    finally:
        await shutdown(runner, server, player, replies)
        logger.info("slackonos_stopped")


def run():
    """Synchronous entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
