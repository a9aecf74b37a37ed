"""Sentry error tracking for the MCQ service.

Tracking is enabled only when a DSN is configured; every function here is a
no-op otherwise.
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from .config import Settings

logger = logging.getLogger(__name__)

_initialized = False


def init_error_tracking(settings: Settings) -> bool:
    """Initialize the Sentry SDK with FastAPI/Starlette integrations.

    Returns:
        True if Sentry was initialized, False if skipped or failed

    Note:
        Does not raise; failures are logged.
    """
    global _initialized

    if not settings.sentry_dsn:
        logger.debug("Sentry initialization skipped (DSN not configured)")
        return False

    try:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.env,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            integrations=[
                LoggingIntegration(level=None, event_level=None),
                FastApiIntegration(transaction_style="endpoint"),
                StarletteIntegration(transaction_style="endpoint"),
            ],
            send_default_pii=False,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}", exc_info=True)
        return False

    _initialized = True
    logger.info(f"Sentry initialized for environment '{settings.env}'")
    return True


def is_error_tracking_enabled() -> bool:
    """Check if Sentry has been initialized."""
    return _initialized


def capture_error(
    exception: BaseException,
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """Capture an exception to Sentry.

    Args:
        exception: The exception to capture
        context: Extra data attached under the "generation" context
        tags: Tags for filtering in Sentry

    Returns:
        Sentry event ID, or None if tracking is disabled
    """
    if not _initialized:
        return None

    with sentry_sdk.push_scope() as scope:
        if context:
            scope.set_context("generation", context)
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        return sentry_sdk.capture_exception(exception)
