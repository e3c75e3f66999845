"""Logger configuration for the coachplan service."""

import sys
from pathlib import Path

from loguru import logger

SERVICE_NAME = "coachplan"

# Bound by every entry point; not repeated in the rendered context
_RESERVED_EXTRA = frozenset({"service", "context"})

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[service]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    "<dim>{extra[context]}</dim>\n{exception}"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[service]} | {name}:{function}:{line} - {message}{extra[context]}\n{exception}"


def _render_context(record) -> None:
    """Render keyword context (assignment_id=..., scheduled_workout_id=...) as key=value pairs."""
    pairs = [f"{key}={value}" for key, value in record["extra"].items() if key not in _RESERVED_EXTRA]
    record["extra"]["context"] = " | " + " ".join(pairs) if pairs else ""


def _console_format(record) -> str:
    _render_context(record)
    return _CONSOLE_FORMAT


def _file_format(record) -> str:
    _render_context(record)
    return _FILE_FORMAT


def setup_logger(
    level: str = "INFO",
    log_file: str | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """Configure loguru logger with console and optional file output.

    Every record carries ``extra["service"]``. Keyword arguments passed to
    logger calls (e.g. ``logger.info("Assignment accepted", assignment_id=...)``)
    are bound into ``record["extra"]`` and rendered after the message.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. If None, only console logging.
        rotation: Log rotation size (e.g., "10 MB", "1 day")
        retention: Log retention period (e.g., "7 days", "1 month")
    """
    logger.remove()
    logger.configure(extra={"service": SERVICE_NAME})

    logger.add(sys.stderr, format=_console_format, level=level, colorize=True)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path,
            format=_file_format,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            backtrace=True,
            diagnose=False,
        )

    logger.info(f"Logger initialized with level={level}")
