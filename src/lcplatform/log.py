# src/lcplatform/log.py
from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

ROOT_LOGGER = "lcplatform"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%H:%M:%S"

_HANDLER_ATTR = "_lcplatform_handler"


def _level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Nivel de log desconocido: {level!r}")
    return value


def configure_logging(level: int | str = "INFO", stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Instala UN handler de consola en el logger raíz del paquete.
    Idempotente: llamadas repetidas solo cambian el nivel.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(_level(level))
    for h in logger.handlers:
        if getattr(h, _HANDLER_ATTR, False):
            h.setStream(stream or sys.stderr)
            return logger
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    setattr(handler, _HANDLER_ATTR, True)
    logger.addHandler(handler)
    return logger


__all__ = ["configure_logging", "LOG_FORMAT", "ROOT_LOGGER"]
