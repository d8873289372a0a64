"""JSON line logging for scheduled invocations.

Every record becomes one JSON object on stdout so the runtime's log collector
can index ``account_id``, ``request_id`` and the other bound fields directly.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace

# Attributes every stdlib LogRecord carries; anything else was passed via ``extra``.
_STDLIB_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_QUIET_LIBRARIES = ("botocore", "boto3", "urllib3", "httpx", "httpcore")


class InterceptHandler(logging.Handler):
    """Forward boto3, botocore and httpx records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = {key: value for key, value in vars(record).items() if key not in _STDLIB_RECORD_FIELDS}
        text = record.getMessage().replace("{", "{{").replace("}", "}}")
        logger.bind(stdlib_logger=record.name, **extra).opt(depth=6, exception=record.exc_info).log(level, text)


class JsonLineSink:
    """Loguru sink writing one JSON document per record."""

    def __init__(self, *, service_name: str, environment: str, version: str, stream: Any = None) -> None:
        self._static = {"service": service_name, "environment": environment, "version": version}
        self._stream = stream or sys.stdout

    def __call__(self, message: Any) -> None:
        record = message.record
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["name"],
            **self._static,
        }
        payload.update(_trace_context())
        payload.update(record["extra"])

        exception = record["exception"]
        if exception is not None and exception.type is not None:
            payload["exception"] = f"{exception.type.__name__}: {exception.value}"

        self._stream.write(json.dumps(payload, default=str) + "\n")
        self._stream.flush()


def _trace_context() -> Dict[str, str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {"trace_id": f"{span_context.trace_id:032x}", "span_id": f"{span_context.span_id:016x}"}


def configure_logging(*, service_name: str, environment: str, version: str) -> None:
    """Replace Loguru's default handler with the JSON sink and capture stdlib logging."""

    logger.remove()
    logger.add(
        JsonLineSink(service_name=service_name, environment=environment, version=version),
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def mask_secret(value: str | None, *, visible_prefix: int = 7, visible_suffix: int = 4) -> str:
    """Mask an API key for log output, keeping its prefix and last characters."""

    if not value:
        return ""
    if len(value) <= visible_prefix + visible_suffix:
        return value[:3] + "..."
    return f"{value[:visible_prefix]}...{value[-visible_suffix:]}"


__all__ = ["InterceptHandler", "JsonLineSink", "configure_logging", "mask_secret"]
