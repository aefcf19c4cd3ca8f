"""Loguru setup and helpers that tag log lines with delivery context."""

from __future__ import annotations

import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List

from loguru import logger as _logger

_CONFIGURED = False
DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_DIR_ENV = "NEXGENGIT_LOG_DIR"
LOG_LEVEL_ENV = "NEXGENGIT_LOG_LEVEL"

# Every record carries these, so the format can reference them before a delivery is bound.
DELIVERY_FIELDS = ("delivery_id", "repository", "pr_number")
_UNBOUND = "-"

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[delivery_id]}</magenta> "
    "<blue>{extra[repository]}#{extra[pr_number]}</blue> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def _resolve_log_dir(explicit: str | Path | None) -> Path:
    if explicit is not None:
        return Path(explicit).expanduser().resolve()
    env_value = os.getenv(LOG_DIR_ENV)
    return Path(env_value).expanduser().resolve() if env_value else DEFAULT_LOG_DIR


def _sinks(log_dir: Path, level: str) -> List[Dict[str, Any]]:
    """Console at the operator's level, plus a full debug trail on disk."""

    console = {"sink": sys.stdout, "level": level, "format": LOG_FORMAT, "colorize": sys.stdout.isatty()}
    daily_file = {
        "sink": log_dir / "webhook-{time:YYYY-MM-DD}.log",
        "level": "DEBUG",
        "format": LOG_FORMAT,
        "rotation": "50 MB",
        "retention": "10 days",
        "enqueue": True,
        "backtrace": True,
        # Tracebacks would otherwise dump locals, including tokens and PEM keys.
        "diagnose": False,
    }
    return [console, daily_file]


def configure_logger(*, log_dir: str | Path | None = None, level: str | None = None) -> None:
    """Install the webhook sinks once per process; later calls are no-ops."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    _logger.configure(
        handlers=_sinks(target_dir, level or os.getenv(LOG_LEVEL_ENV, "INFO")),
        extra={field: _UNBOUND for field in DELIVERY_FIELDS},
    )
    _CONFIGURED = True


def get_logger(*, log_dir: str | Path | None = None, level: str | None = None):
    """Return the configured logger, configuring it on first access."""

    configure_logger(log_dir=log_dir, level=level)
    return _logger


def log_with_context(logger_instance, **context: str | int | None) -> Any:
    """Bind delivery fields (delivery id, repository, PR number) to log messages.

    ``None`` values are dropped so partially known deliveries still log cleanly.
    """
    return logger_instance.bind(**{k: v for k, v in context.items() if v is not None})


def delivery_context(
    delivery_id: str | None = None,
    repository: str | None = None,
    pr_number: int | None = None,
) -> Dict[str, str | int | None]:
    return {"delivery_id": delivery_id, "repository": repository, "pr_number": pr_number}


@contextmanager
def log_timing(logger_instance, operation: str, **context: str | int | None) -> Iterator[Any]:
    """Log how long a pipeline step takes; failures are logged and re-raised.

    Usage:
        with log_timing(logger, "fetch_diff", repository="owner/repo"):
            ...
    """
    start_time = time.perf_counter()
    ctx_logger = log_with_context(logger_instance, **context)
    ctx_logger.debug(f"Starting {operation}")
    try:
        yield ctx_logger
    except Exception as exc:
        ctx_logger.error(f"Failed {operation} after {time.perf_counter() - start_time:.3f}s: {exc}")
        raise
    ctx_logger.debug(f"Completed {operation} in {time.perf_counter() - start_time:.3f}s")


def _log_outcome(logger_instance, level: str, outcome: str, message: str, **context: str | int | None) -> None:
    log_with_context(logger_instance, **context).log(level, f"=== {outcome}: {message} ===")


def log_success(logger_instance, message: str, **context: str | int | None) -> None:
    """Log a delivery whose comment was posted."""
    _log_outcome(logger_instance, "INFO", "SUCCESS", message, **context)


def log_ignored(logger_instance, message: str, **context: str | int | None) -> None:
    """Log a delivery that is acknowledged without being reviewed."""
    _log_outcome(logger_instance, "INFO", "IGNORED", message, **context)


def log_failure(logger_instance, message: str, error: Exception | None = None, **context: str | int | None) -> None:
    """Log a delivery that stopped early, with the error when there is one."""
    if error is not None:
        message = f"{message} | Error: {error}"
    _log_outcome(logger_instance, "ERROR", "FAILURE", message, **context)
