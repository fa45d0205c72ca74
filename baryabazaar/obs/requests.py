"""Per-request access log for the ledger API.

Each call produces one JSON line on the ``requests.audit`` logger. Credentials
are replaced by ``***`` and e-mail addresses keep only their first character,
so trade payloads can be logged without leaking who traded.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_SECRET_KEYS = frozenset({"password", "refresh_token", "access_token", "account_number", "phone"})


def _mask_email(address: str) -> str:
    local, _, domain = address.partition("@")
    if not domain:
        return "***@***"
    return f"{local[:1]}***@{domain}"


def _mask(key: str | None, value: Any) -> Any:
    if key is not None and key.lower() in _SECRET_KEYS:
        return "***"
    if isinstance(value, dict):
        return {child: _mask(child, item) for child, item in value.items()}
    if isinstance(value, list):
        return [_mask(None, item) for item in value]
    if isinstance(value, str) and "@" in value:
        return _mask_email(value)
    return value


def mask_mapping(mapping: dict[str, Any]) -> dict[str, Any]:
    """Hide credentials and contact details in a request payload."""

    return _mask(None, mapping)


def _masked_body(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return _mask(None, json.loads(raw))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return f"<{len(raw)} bytes>"


@dataclass(slots=True)
class RequestLogRecord:
    request_id: str
    method: str
    path: str
    status: int
    duration_ms: float
    actor: str | None
    client: str | None
    query: dict[str, Any]
    body: Any
    at: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Emit a :class:`RequestLogRecord` for every call and echo the request id."""

    def __init__(self, app: Any, *, logger: logging.Logger | None = None) -> None:
        super().__init__(app)
        self._logger = logger or logging.getLogger("requests.audit")

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        body = _masked_body(await request.body())

        response = await call_next(request)

        actor = getattr(request.state, "actor_email", None)
        self._logger.info(
            RequestLogRecord(
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                actor=_mask_email(actor) if actor else None,
                client=request.client.host if request.client else None,
                query=mask_mapping(dict(request.query_params)),
                body=body,
                at=datetime.now(timezone.utc).isoformat(),
            ).to_json()
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


__all__ = ["REQUEST_ID_HEADER", "RequestLogRecord", "RequestLoggingMiddleware", "mask_mapping"]
