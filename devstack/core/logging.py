"""Logging configuration.

Every console record passes through :class:`SensitiveDataFilter`, so
recipient addresses, Resend API keys and bearer tokens never reach the
log stream, including text embedded in provider error messages and
formatted tracebacks.
"""
import logging
import logging.config
import re

REDACTED = "[REDACTED]"

# (pattern, replacement); patterns with a prefix group keep the prefix.
SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(?i)(bearer\s+)([^\s,\"']+)"), r"\1" + REDACTED),
    (re.compile(r"\bre_[A-Za-z0-9_]{8,}\b"), REDACTED),
    (re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"), REDACTED),
]


def redact(text: str) -> str:
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SensitiveDataFilter(logging.Filter):
    """Redact recipient addresses and credentials from log records."""

    def _sanitize(self, value: object) -> object:
        if isinstance(value, str):
            return redact(value)
        if isinstance(value, BaseException):
            # Exceptions are interpolated with str(); redact that text.
            return redact(str(value))
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._sanitize(record.msg)

        if isinstance(record.args, tuple):
            record.args = tuple(self._sanitize(item) for item in record.args)
        elif isinstance(record.args, dict):
            record.args = {key: self._sanitize(value) for key, value in record.args.items()}

        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = redact(record.exc_text)

        return True


def _quiet(level: str = "WARNING") -> dict:
    return {"handlers": ["console"], "level": level, "propagate": False}


def setup_logging(level: str | None = None) -> None:
    from devstack.core.settings import get_settings

    level = (level or get_settings().log_level).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "sensitive": {"()": "devstack.core.logging.SensitiveDataFilter"},
            },
            "formatters": {
                "default": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["sensitive"],
                }
            },
            "loggers": {
                "": {"handlers": ["console"], "level": level},
                "uvicorn.access": _quiet(),
                # httpx logs full request URLs at INFO.
                "httpx": _quiet(),
                "sqlalchemy.engine": _quiet(),
            },
        }
    )
