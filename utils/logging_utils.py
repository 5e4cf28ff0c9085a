"""
Process-wide logging for the ridecast service.

Entrypoints (the API server, a one-off tuning run) call `setup_logging` once:

    from utils.logging_utils import setup_logging

    setup_logging(level="INFO", job_name="ridecast_api")

Modules take a tagged adapter instead of a bare logger:

    from utils.logging_utils import get_tagged_logger

    logger = get_tagged_logger(__name__, tag="footing_tuner")
    logger.info("Drying rate unchanged")

Every formatted line carries `job_name` and `tag`, so output from the scorer,
the stores and the Open-Meteo client can be told apart in one stream. INFO and
below go to stdout, WARNING and above to stderr.
"""

from __future__ import annotations

import logging
import logging.config
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlparse


# Anything logged on import, before setup_logging() runs, still gets a
# timestamp and level.
BOOTSTRAP_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
BOOTSTRAP_DATEFMT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(level=logging.INFO, format=BOOTSTRAP_FORMAT, datefmt=BOOTSTRAP_DATEFMT)

DEFAULT_LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(job_name)s | %(tag)s | %(name)s | %(message)s"
)
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty dependencies held at WARNING unless the root level is stricter.
QUIET_LOGGERS = ("urllib3", "sqlalchemy.engine", "redis")

_SENSITIVE_QUERY_KEYS = ("pass", "pwd", "secret", "token", "key")

_CONFIGURED: bool = False


class MaxLevelFilter(logging.Filter):
    """Drop records above `max_level` (keeps warnings off stdout)."""

    def __init__(self, max_level: int) -> None:
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        return record.levelno <= self.max_level


class EnsureTagFilter(logging.Filter):
    """Give untagged records (uvicorn, sqlalchemy) the last segment of their logger name as tag."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "tag"):
            name = getattr(record, "name", "")
            record.tag = name.rsplit(".", 1)[-1] if name else "-"
        return True


class JobNameFilter(logging.Filter):
    """Stamp the process-wide job name on records that lack one."""

    def __init__(self, job_name: Optional[str] = None) -> None:
        super().__init__()
        self._job_name = job_name or "-"

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "job_name"):
            record.job_name = self._job_name
        return True


def _stream_handler(stream: str, level: str, filters: List[str]) -> Dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "formatter": "standard",
        "filters": filters,
        "level": level,
        "stream": f"ext://sys.{stream}",
    }


def build_logging_config(
    *,
    level: str | int = "INFO",
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    job_name: Optional[str] = None,
    quiet_loggers: tuple[str, ...] = QUIET_LOGGERS,
) -> Mapping[str, Any]:
    """
    Return a `logging.config.dictConfig` mapping.

    Parameters
    ----------
    level:
        Root level, as a name ("DEBUG") or number.
    log_format, date_format:
        Formatter patterns; the default format expects `job_name` and `tag`.
    job_name:
        Process label stamped on every record, e.g. "ridecast_api".
    quiet_loggers:
        Third-party logger names capped at WARNING.
    """
    common = ["ensure_tag", "job_name"]
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "ensure_tag": {"()": EnsureTagFilter},
            "job_name": {"()": JobNameFilter, "job_name": job_name},
            "stdout_max_info": {"()": MaxLevelFilter, "max_level": logging.INFO},
        },
        "formatters": {
            "standard": {"format": log_format, "datefmt": date_format},
        },
        "handlers": {
            "stdout": _stream_handler("stdout", "DEBUG", common + ["stdout_max_info"]),
            "stderr": _stream_handler("stderr", "WARNING", list(common)),
        },
        "loggers": {name: {"level": "WARNING"} for name in quiet_loggers},
        "root": {"level": level, "handlers": ["stdout", "stderr"]},
    }


def setup_logging(
    *,
    level: str | int = "INFO",
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    job_name: Optional[str] = None,
    override_existing: bool = False,
) -> None:
    """Apply the logging config once; later calls are no-ops unless `override_existing`."""
    global _CONFIGURED

    if _CONFIGURED and not override_existing:
        return

    logging.config.dictConfig(
        build_logging_config(level=level, log_format=log_format, date_format=date_format, job_name=job_name)
    )
    _CONFIGURED = True


def get_tagged_logger(name: str, *, tag: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Wrap `logging.getLogger(name)` so each record carries `tag`.

    The tag defaults to the last dotted segment of `name`
    ("ridecast.stores.sql" -> "sql").
    """
    if tag is None:
        tag = name.rsplit(".", 1)[-1]
    return logging.LoggerAdapter(logging.getLogger(name), {"tag": tag})


def mask_db_url(url: str) -> str:
    """Hide credentials in a database URL before it is logged.

    postgresql://rider:secret@db:5432/ridecast -> postgresql://***:***@db:5432/ridecast
    sqlite:///./ridecast.db is returned unchanged.
    """
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return url

    query = urlencode([
        (key, "***" if any(token in key.lower() for token in _SENSITIVE_QUERY_KEYS) else value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
    ])

    if not parsed.netloc:
        # sqlite/file style URLs: nothing to mask outside the query string
        if not parsed.query:
            return url
        return url.split("?", 1)[0] + f"?{query}" + (f"#{parsed.fragment}" if parsed.fragment else "")

    credentials = ""
    if parsed.username:
        credentials = "***:***@" if parsed.password is not None else "***@"
    netloc = f"{credentials}{parsed.hostname or ''}" + (f":{port}" if port else "")
    return parsed._replace(netloc=netloc, query=query).geturl()
