"""
Process-wide logging setup for the web settings service.

Usage
-----
Once, at process start (``run_server.py`` or the FastAPI lifespan):

    from utils.logging_utils import setup_logging

    setup_logging(level="INFO", job_name="stb-web-settings")

In each module:

    from utils.logging_utils import get_tagged_logger

    logger = get_tagged_logger(__name__, tag="session_manager")
    logger.info("Session created")

Every line then carries the job name, a component tag and the logger name.
Session keys and secrets are credentials; pass them through ``mask_token``
before they reach a log line.
"""

from __future__ import annotations

import logging
import logging.config
from typing import Any, Mapping, Optional


# ---------------------------------------------------------------------------
# Bootstrap config
# ---------------------------------------------------------------------------

# Applied on import so that anything logged before setup_logging() still
# carries a timestamp and level.
BOOTSTRAP_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
BOOTSTRAP_DATEFMT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(
    level=logging.INFO,
    format=BOOTSTRAP_FORMAT,
    datefmt=BOOTSTRAP_DATEFMT,
)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(job_name)s | %(tag)s | %(name)s | %(message)s"
)
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_JOB_NAME = "stb-web-settings"

_CONFIGURED: bool = False


# ---------------------------------------------------------------------------
# Record filters
# ---------------------------------------------------------------------------

class MaxLevelFilter(logging.Filter):
    """Pass only records at or below ``max_level`` (keeps warnings off stdout)."""

    def __init__(self, max_level: int) -> None:
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        return record.levelno <= self.max_level


class EnsureTagFilter(logging.Filter):
    """
    Give every record a ``tag``.

    Records coming through ``get_tagged_logger`` already have one; third-party
    loggers (uvicorn, fastapi) get the last segment of their logger name.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "tag"):
            logger_name = getattr(record, "name", "")
            record.tag = logger_name.split(".")[-1] if logger_name else "-"
        return True


class JobNameFilter(logging.Filter):
    """Stamp each record with the process-level ``job_name``."""

    def __init__(self, job_name: Optional[str] = None) -> None:
        super().__init__()
        self._job_name = job_name or "-"

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "job_name"):
            record.job_name = self._job_name
        return True


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def build_logging_config(
    *,
    level: str | int = "INFO",
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    job_name: Optional[str] = DEFAULT_JOB_NAME,
) -> Mapping[str, Any]:
    """
    Return a ``logging.config.dictConfig`` mapping.

    DEBUG and INFO go to stdout, WARNING and above to stderr. Both handlers
    add ``tag`` and ``job_name`` to every record so ``log_format`` can use them.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "ensure_tag": {"()": EnsureTagFilter},
            "job_name": {"()": JobNameFilter, "job_name": job_name},
            "stdout_max_info": {
                "()": MaxLevelFilter,
                "max_level": logging.INFO,
            },
        },
        "formatters": {
            "standard": {
                "format": log_format,
                "datefmt": date_format,
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "filters": ["ensure_tag", "job_name", "stdout_max_info"],
                "level": "DEBUG",
                "stream": "ext://sys.stdout",
            },
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "filters": ["ensure_tag", "job_name"],
                "level": "WARNING",
                "stream": "ext://sys.stderr",
            },
        },
        "root": {
            "level": level,
            "handlers": ["stdout", "stderr"],
        },
    }


def setup_logging(
    *,
    level: str | int = "INFO",
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    job_name: Optional[str] = DEFAULT_JOB_NAME,
    override_existing: bool = False,
) -> None:
    """
    Apply the logging configuration once per process.

    Later calls are ignored unless ``override_existing`` is True, so both the
    server entrypoint and the application lifespan can call this safely.
    """
    global _CONFIGURED

    if _CONFIGURED and not override_existing:
        return

    logging.config.dictConfig(
        build_logging_config(
            level=level,
            log_format=log_format,
            date_format=date_format,
            job_name=job_name,
        )
    )
    _CONFIGURED = True


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_tagged_logger(
    name: str,
    *,
    tag: Optional[str] = None,
) -> logging.LoggerAdapter:
    """
    Return a LoggerAdapter whose records always carry ``tag``.

    ``tag`` defaults to the last dotted segment of ``name``.
    """
    base_logger = logging.getLogger(name)
    if tag is None:
        tag = name.split(".")[-1]
    return logging.LoggerAdapter(base_logger, {"tag": tag})


def mask_token(token: Optional[str], visible: int = 4) -> str:
    """Return a loggable form of a session key or secret.

    Only the first ``visible`` characters survive:

    - ``"Xk3pQ9aZ..."`` -> ``"Xk3p***"``
    - short or empty tokens are fully masked
    """
    if not token:
        return "***"
    if len(token) <= visible * 2:
        return "***"
    return f"{token[:visible]}***"
