from __future__ import annotations

import logging

from privacyhub.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    # Configure root logging once; repeated calls only adjust the level.
    resolved = (level or get_settings().log_level or "INFO").upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=_LOG_FORMAT)
    root.setLevel(resolved)
    # Keep SQL echo off unless explicitly requested through SQLAlchemy's own logger.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
