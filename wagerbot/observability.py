"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from wagerbot import __version__
from wagerbot.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> None:
    """
    Initialize Logfire once at startup, before any service is built.

    Instruments:
    - HTTPX clients (price providers, BlockCypher, Solana RPC)
    - Python logging (bridged to Logfire)

    Args:
        settings: Application settings containing the Logfire token
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        if settings.simulation_mode:
            environment = "simulation"
        elif settings.live_transfers_enabled:
            environment = "live"
        else:
            environment = "dry-run"

        logfire.configure(
            token=settings.logfire_token,
            service_name="wagerbot",
            service_version=__version__,
            environment=environment,
        )

        logfire.instrument_httpx()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire cloud tracking initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
