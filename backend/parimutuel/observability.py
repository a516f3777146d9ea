"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire
from fastapi import FastAPI

from parimutuel import __version__
from parimutuel.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings, app: FastAPI | None = None) -> bool:
    """
    Initialize Logfire and bridge Python logging to it.

    Must be called ONCE at process startup, before the ledger is used.

    Instruments:
    - FastAPI request handling (when ``app`` is given)
    - Python logging (ledger lifecycle, payouts, transfer failures)
    - System metrics (CPU, memory, disk), when available

    Returns:
        True if Logfire was configured, False if observability stays disabled.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="parimutuel",
            service_version=__version__,
            environment=settings.environment,
        )

        if app is not None:
            logfire.instrument_fastapi(app)

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        try:
            logfire.instrument_system_metrics()
        except Exception as metrics_error:
            logger.debug(f"System metrics instrumentation skipped: {metrics_error}")

        logger.info("Logfire cloud tracking initialized")
        return True

    except Exception as e:
        # Observability is optional; the ledger keeps running without it.
        logger.warning(f"Failed to initialize Logfire: {e}")
        return False
