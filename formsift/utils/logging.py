"""
Structured logging for formsift.

structlog renders every event either as one JSON object per line or, for
interactive use, as colored console output. Context bound with LogContext
(command, stage, fold) is merged into each event of the current context.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from structlog.types import Processor

from formsift.utils.config import Settings, get_project_root, get_settings

LOG_FORMATS = ("json", "console")


def _default_log_file(settings: Settings) -> Path | None:
    if not settings.general.log_to_file:
        return None
    log_dir = get_project_root() / settings.general.logs_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"formsift_{datetime.now().strftime('%Y%m%d')}.log"


def configure_logging(
    log_level: str | None = None,
    log_file: str | Path | None = None,
    json_format: bool = True,
) -> None:
    """Configure structlog on top of the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to general.log_level.
        log_file: Extra file destination. Defaults to a dated file under
            general.logs_dir when general.log_to_file is set.
        json_format: JSON lines (True) or console output (False).
    """
    settings = get_settings()
    level = getattr(logging, (log_level or settings.general.log_level).upper(), logging.INFO)
    if log_file is None:
        log_file = _default_log_file(settings)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(format="%(message)s", level=level, handlers=handlers, force=True)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for a module; pass ``__name__``."""
    return structlog.get_logger(name)


class LogContext:
    """Bind key/values to every log event inside a ``with`` block.

    Nested blocks may rebind the same key; the outer value comes back on
    exit. Binding lives in a contextvar, so worker threads only see it when
    they run inside a copied context (see evaluation._run_folds).

    Example:
        with LogContext(stage="page", fold=3):
            logger.info("Evaluating fold")
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs
        self._bound = None

    def __enter__(self) -> "LogContext":
        self._bound = structlog.contextvars.bound_contextvars(**self.context)
        self._bound.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._bound.__exit__(exc_type, exc_val, exc_tb)
        self._bound = None
