import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Install a root handler at the configured level (no-op if one exists)."""
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=LOG_FORMAT)
