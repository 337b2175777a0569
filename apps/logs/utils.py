import logging
from typing import Any, Dict, Optional

from django.conf import settings


def log_event(
    message: str,
    *,
    level: int = logging.INFO,
    channel: str = "app",
    context: Optional[Dict[str, Any]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Write a structured event to the `app` logger tree (and so to the logs table)."""

    logger_name = channel if channel == "app" or channel.startswith("app.") else f"app.{channel}"
    logger = logging.getLogger(logger_name)
    logger.log(
        level,
        message,
        extra={
            "context": context or {},
            "extra_data": extra or {},
            "channel": channel,
            "environment": getattr(settings, "APP_ENV", "local"),
        },
    )
