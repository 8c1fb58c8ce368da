"""Loguru sinks and structured record helpers for the report pipeline."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from pollreport.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

# Third-party loggers that drown out pipeline records at INFO.
QUIET_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "httpx",
    "httpcore",
    "openai._base_client",
    "asyncpg",
    "google",
    "asyncio",
)


def configure_logging(log_dir: str | Path | None = None) -> Path:
    """Install the console and daily-rotated file sinks; returns the log directory."""
    directory = Path(log_dir or settings.log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=settings.app_log_level.upper(),
        colorize=True,
    )
    logger.add(
        directory / "pollreport_{time:YYYY-MM-DD}.log",
        format=FILE_FORMAT,
        level="DEBUG",
        rotation="00:00",
        retention="7 days",
        compression="zip",
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(settings.noisy_log_level.upper())
    return directory


LOG_DIR = configure_logging()


def _record(tag: str, fields: dict[str, Any], *, level: str = "INFO") -> None:
    payload = {"timestamp": datetime.now(timezone.utc).isoformat(), **fields}
    logger.opt(depth=2).log(level, f"{tag}: {payload}")


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Record one model call with its token usage and latency."""
    _record(
        "LLM_CALL_FAILED" if error else "LLM_CALL",
        {
            "model": model,
            "caller": caller,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "duration_ms": duration_ms,
            "status": status,
            "error": error,
        },
        level="ERROR" if error else "INFO",
    )


def log_report_step(step: str, status: str, data: Optional[dict[str, Any]] = None) -> None:
    _record("REPORT_STEP", {"step": step, "status": status, "data": data})


def log_db_operation(
    operation: str,
    table: str,
    status: str,
    details: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Store reads are logged at DEBUG; failures at ERROR."""
    _record(
        "DB_OPERATION_FAILED" if error else "DB_OPERATION",
        {
            "operation": operation,
            "table": table,
            "status": status,
            "details": details,
            "error": error,
        },
        level="ERROR" if error else "DEBUG",
    )


def log_event(event_type: str, message: str, **kwargs: Any) -> None:
    _record("EVENT", {"event_type": event_type, "message": message, **kwargs})
