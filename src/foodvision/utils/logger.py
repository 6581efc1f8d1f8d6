"""Structured logging configuration."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config import get_settings

_CONFIGURED = False


def _configure() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return
    log_dir = Path(get_settings().log_dir)
    logger.remove()
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(sys.stderr, level="INFO")
    logger.add(
        log_dir / "foodvision.log",
        rotation="10 MB",
        retention="10 days",
        level="INFO",
    )
    _CONFIGURED = True


def get_logger(name: Optional[str] = None):
    _configure()
    return logger.bind(module=name or "foodvision")
