"""
Structured logging with key=value and JSON output support.

Two renderings are available for the same call:

* key=value pairs appended to the message (default, human-readable)
* one JSON object per line (``json_output=True``) for log aggregators

The [StructuredFormatter][notemixer.core.logger.StructuredFormatter] reads the
``structured_kv`` extra attached by [Logger][notemixer.core.logger.Logger] so
records from plain ``logging.getLogger()`` calls in lower layers come out
with the same ``level name message`` prefix.

Examples:
    ```python
    logger = Logger("relay")
    logger.info("event_mixed", kind=1, id="ab12...")
    # Output: info relay event_mixed kind=1 id=ab12...
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


def _truncate(value: Any, limit: int | None) -> str:
    s = str(value)
    if limit and len(s) > limit:
        return s[:limit] + f"...<truncated {len(s) - limit} chars>"
    return s


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values are truncated to ``max_value_length`` characters. Empty values and
    values containing whitespace, ``=`` or quotes are escaped and quoted.

    Returns:
        Formatted string such as ``' kind=1 reason="pubkey not whitelisted"'``,
        or an empty string when *kwargs* is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for key, value in kwargs.items():
        s = _truncate(value, max_value_length)
        if not s or any(c in s for c in " =\"'"):
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{key}="{escaped}"')
        else:
            parts.append(f"{key}={s}")
    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Render every record as ``level name message key=value...``."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            line += format_kv_pairs(extra)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    """Render every record as one JSON object.

    Used by ``--json-logs`` so that records from plain ``logging.getLogger()``
    calls and from [Logger][notemixer.core.logger.Logger] share one shape.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.datetime.fromtimestamp(record.created, datetime.UTC).isoformat(),
            "level": record.levelname.lower(),
            "service": record.name,
            "message": record.getMessage(),
            **getattr(record, "structured_kv", {}),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class Logger:
    """Structured logger that appends keyword arguments as fields.

    Mirrors the standard logging API (``debug`` ... ``exception``) with an
    extra ``**kwargs`` parameter carrying the structured fields.

    Args:
        name: Name passed to ``logging.getLogger``.
        json_output: Emit one JSON object per record instead of key=value pairs.
        max_value_length: Per-value truncation limit. Defaults to 1000.
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
    ) -> None:
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = (
            self._DEFAULT_MAX_VALUE_LENGTH if max_value_length is None else max_value_length
        )

    @property
    def name(self) -> str:
        return self._logger.name

    def _format_json(self, msg: str, level: str, kwargs: dict[str, Any]) -> str:
        payload = {
            "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
            "level": level,
            "service": self._logger.name,
            "message": msg,
            **kwargs,
        }
        return json.dumps(payload, default=str)

    def _log(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if self._json_output:
            level_name = logging.getLevelName(level).lower()
            self._logger.log(level, self._format_json(msg, level_name, kwargs), exc_info=exc_info)
            return
        extra = {}
        if kwargs:
            extra = {
                "structured_kv": {
                    k: _truncate(v, self._max_value_length) for k, v in kwargs.items()
                }
            }
        self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR level with the active exception's traceback."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)
