"""Logging configuration for the application"""
import json
import logging

from app.core.config import settings


def setup_logging():
    """Configure logging for the application"""
    LOG_LEVEL = settings.LOG_LEVEL.upper()
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True
    )

    # Silence noisy third-party libraries
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


webhook_logger = logging.getLogger("stripe_webhook")


def log_webhook_event(event_name: str, level: int = logging.INFO, **fields) -> None:
    """Emit a structured reconciler log line: '<event_name> {json fields}'.

    Never raises.
    """
    try:
        payload = json.dumps(fields, default=str, sort_keys=True)
        webhook_logger.log(level, f"{event_name} {payload}")
    except Exception:
        pass
