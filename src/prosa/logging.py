"""Structured logging para o Prosa.

structlog sobre o logging da stdlib. Formatos:
- console: legivel para desenvolvimento (default)
- json: uma linha por evento, para coleta

Os logs vao para stderr: no chat do terminal o stdout fica reservado
para a conversa.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

import structlog

_configured = False

# Bibliotecas de transporte sao verbosas em DEBUG
_QUIET_LOGGERS = ("httpx", "httpcore", "websockets")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(
    log_format: str | None = None,
    level: str | None = None,
    *,
    stream: TextIO | None = None,
) -> None:
    """Configura logging estruturado uma unica vez por processo.

    Args:
        log_format: "json" ou "console". Default via PROSA_LOG_FORMAT ou "console".
        level: Nivel minimo (DEBUG, INFO, WARNING, ERROR). Default via
            PROSA_LOG_LEVEL ou "INFO".
        stream: Destino dos logs (default stderr).
    """
    global _configured
    if _configured:
        return

    log_format = log_format or os.environ.get("PROSA_LOG_FORMAT", "console")
    level_name = (level or os.environ.get("PROSA_LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    _configured = True


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Logger com o campo ``component`` vinculado (ex: "synthesis.player")."""
    configure_logging()
    return structlog.get_logger().bind(component=component)  # type: ignore[no-any-return]
