from __future__ import annotations

import sys
from typing import Any, Optional

from loguru import logger

from .settings import get_engine_settings

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function} | {message}"

_configured = False


def configure_logging(level: Optional[str] = None, sink: Any = None, *, force: bool = False) -> None:
    """Replace loguru's default handler with one sink at `level`; runs once unless forced."""
    global _configured
    if _configured and not force:
        return

    level = level or get_engine_settings().log_level
    logger.remove()
    logger.add(
        sink if sink is not None else sys.stderr,
        level=level,
        format=_LOG_FORMAT,
        backtrace=True,
        diagnose=False,
    )
    _configured = True
    logger.debug("Logging configured at level {}", level)
