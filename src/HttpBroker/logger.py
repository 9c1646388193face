"""Structured logging for outbound requests.

:class:`HttpLogger` is what the orchestrator logs through: one instance per
request, bound to the request's log type and operation. Structured fields
travel in ``extra_fields`` and are rendered by :class:`JSONFormatter`, which
masks credential-like keys before anything reaches disk.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .errors import HttpBrokerError, HttpResponseValidationError

__all__ = ("SEVERITIES", "mask_sensitive_data", "JSONFormatter", "HttpLogger", "setup_logging")

SEVERITIES: Dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password", "cookie"}
_MASK = "***masked***"


def mask_sensitive_data(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``payload`` with credential-like values masked, recursively."""

    def _mask_value(value: Any, key_hint: str) -> Any:
        if key_hint in _SENSITIVE_KEYS:
            return _MASK
        if isinstance(value, Mapping):
            return {k: _mask_value(v, str(k).lower()) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [_mask_value(item, key_hint) for item in value]
        if isinstance(value, str) and "bearer " in value.lower():
            return _MASK
        return value

    return {key: _mask_value(value, str(key).lower()) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def _level(severity: Union[str, int]) -> int:
    if isinstance(severity, int):
        return severity
    try:
        return SEVERITIES[severity.lower()]
    except KeyError:
        raise ValueError(f"Unknown severity[{severity}]") from None


class HttpLogger:
    """Logger bound to one request.

    Args:
        log_type: Type tag of every record, e.g. ``"http-client"``.
        operation: ``provider.service.endpoint.method`` of the request.
        logger: Target logger; defaults to ``HttpBroker.request``.
    """

    def __init__(
        self, log_type: str, operation: str, *, logger: Optional[logging.Logger] = None
    ) -> None:
        self.log_type = log_type
        self.operation = operation
        self.logger = logger or logging.getLogger("HttpBroker.request")

    def log(
        self,
        severity: Union[str, int],
        preface: str,
        fault: Optional[BaseException] = None,
        variables: Optional[Mapping[str, Any]] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Emit one record: ``preface`` + operation, plus fault trace and fields."""
        level = _level(severity)
        if not self.logger.isEnabledFor(level):
            return
        message = f"{preface} {self.operation}"
        if isinstance(fault, HttpResponseValidationError) and fault.records:
            lines = [message, "Discrepancies recorded vs. rule set(s):"]
            for variant, records in fault.records.items():
                lines.append(f"{variant}:")
                lines.extend(f"  {record}" for record in records)
            message = "\n".join(lines)
        fields: Dict[str, Any] = {"log_type": self.log_type, "operation": self.operation}
        if isinstance(fault, HttpBrokerError):
            fields["error_code"] = fault.code.slug
            if fault.details:
                fields["details"] = fault.details
        if variables:
            fields["variables"] = dict(variables)
        if context:
            fields["context"] = dict(context)
        exc_info = (type(fault), fault, fault.__traceback__) if fault is not None else None
        self.logger.log(level, message, exc_info=exc_info, extra={"extra_fields": fields})

    def debug(self, preface: str, **kwargs: Any) -> None:
        self.log("debug", preface, **kwargs)

    def warning(self, preface: str, **kwargs: Any) -> None:
        self.log("warning", preface, **kwargs)

    def error(self, preface: str, **kwargs: Any) -> None:
        self.log("error", preface, **kwargs)


def setup_logging(
    *,
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    json_file: bool = True,
    max_log_size_mb: int = 50,
) -> logging.Logger:
    """Configure broker logging: console plus an optional rotating JSON file."""

    logger = logging.getLogger("HttpBroker")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_httpbroker_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._httpbroker_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if json_file and log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"httpbroker-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._httpbroker_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
