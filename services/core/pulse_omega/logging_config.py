"""
Pulse Omega logging.

structlog on top of stdlib logging. Pipeline code logs events, not sentences:

    logger = get_logger(__name__)
    logger.info("stage_completed", stage="guardian", duration_ms=12)

Console output in development, one JSON object per line in production
(``OMEGA_JSON_LOGS=true``).
"""
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

# Client libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "sqlalchemy.engine", "aiosqlite")

SHARED_PROCESSORS: List[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _renderer(json_logs: bool):
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(level: str = "INFO", log_file: Optional[str] = None, json_logs: bool = False) -> None:
    """Configure structlog and the root stdlib logger once at service start."""
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(format="%(message)s", level=log_level, handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=SHARED_PROCESSORS + [_renderer(json_logs)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> Any:
    return structlog.get_logger(name)


def log_error(error: BaseException, context: Optional[Dict[str, Any]] = None, level: str = "ERROR") -> None:
    """Log an exception with its traceback under ``pulse_omega.errors``."""
    logger = get_logger("pulse_omega.errors")
    emit = getattr(logger, level.lower(), logger.error)
    emit(
        "error_occurred",
        error_type=type(error).__name__,
        error_message=str(error),
        exc_info=error,
        **(context or {}),
    )
