"""One-line JSON log records for the service and the CLI.

Every record carries the ids of the HTTP request and the query being served
(when set) so a retrieval log line can be joined with its access log line.
Callers attach structured data with ``extra={"fields": {...}}``.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import IO, Any

REQUEST_ID_HEADER = "X-Request-Id"
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
query_id_var: ContextVar[str | None] = ContextVar("query_id", default=None)

# Record keys filled from context, in output order.
_CONTEXT_IDS: tuple[tuple[str, ContextVar[str | None]], ...] = (
    ("request_id", request_id_var),
    ("query_id", query_id_var),
)

_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _clean_id(value: str | None) -> str | None:
    return (value or "").strip() or None


def new_request_id() -> str:
    return uuid.uuid4().hex


def set_request_id(rid: str | None) -> None:
    request_id_var.set(_clean_id(rid))


def get_request_id() -> str | None:
    return _clean_id(request_id_var.get())


def set_query_id(qid: str | None) -> None:
    query_id_var.set(_clean_id(qid))


def get_query_id() -> str | None:
    return _clean_id(query_id_var.get())


class JsonFormatter(logging.Formatter):
    """Render a record as ``{"ts", "level", "logger", "msg", ...}``.

    ``ts`` is the record's creation time in UTC with second precision.
    Context ids and ``fields`` never overwrite the base keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc).replace(microsecond=0)
        payload: dict[str, Any] = {
            "ts": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, var in _CONTEXT_IDS:
            value = _clean_id(var.get())
            if value:
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            for key, value in fields.items():
                payload.setdefault(key, value)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_json_logging(*, level: int = logging.INFO, stream: IO[str] | None = None) -> logging.Handler:
    """Route the root logger and uvicorn's loggers through one JSON handler.

    Calling it again replaces the previous handler rather than stacking.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in _SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.setLevel(level)
        server_logger.propagate = False
    return handler


def _ms(value: float) -> float:
    return round(float(value), 3)


def log_http_request(
    *,
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client: str | None,
) -> None:
    level = logging.WARNING if status_code >= 500 else logging.INFO
    logger.log(
        level,
        "http_request",
        extra={
            "fields": {
                "method": method,
                "path": path,
                "status_code": int(status_code),
                "duration_ms": _ms(duration_ms),
                "client": client,
            }
        },
    )


def log_retrieval(
    *,
    logger: logging.Logger,
    strategy: str,
    results: int,
    corpus_size: int,
    duration_ms: float,
    algorithms: list[str],
    stage_timings_ms: dict[str, float],
) -> None:
    logger.info(
        "retrieval_completed",
        extra={
            "fields": {
                "strategy": strategy,
                "results": int(results),
                "corpus_size": int(corpus_size),
                "duration_ms": _ms(duration_ms),
                "algorithms": list(algorithms),
                "stage_timings_ms": {stage: _ms(ms) for stage, ms in stage_timings_ms.items()},
            }
        },
    )
