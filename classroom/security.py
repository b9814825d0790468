"""
classroom.security — Security middleware and request logging for the API.

Provides:
    - RequestIdMiddleware: attaches X-Request-ID to every request/response
      and emits one structured log line per request
    - SecurityHeadersMiddleware: adds OWASP-recommended response headers
      and a per-path Cache-Control policy
    - RequestSizeLimitMiddleware: rejects oversized request bodies / headers
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("classroom.security")


# ---------------------------------------------------------------------------
# Request-ID middleware
# ---------------------------------------------------------------------------

class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a unique request ID to every request and echo it in response."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        t0 = time.monotonic()
        response = await call_next(request)
        latency_ms = round((time.monotonic() - t0) * 1000, 1)
        response.headers["X-Request-ID"] = request_id
        _log_request(request, response.status_code, latency_ms, request_id)
        return response


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Inject OWASP-recommended security headers into every response.
    HSTS is only added when enabled (prod, TLS terminated upstream).

    Cache-Control strategy:
      - /health, /ready, /api/opinions*  → no-store (live or user data)
      - /api/datasets/*, /api/ranking    → public, short TTL (static per deploy)
    """

    _NO_STORE_PREFIXES = ("/health", "/ready", "/api/opinions", "/api/ranking/guess")

    def __init__(self, app: Any, *, enable_hsts: bool = False) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Cross-Origin-Resource-Policy"] = "same-site"

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        path = request.url.path
        if path.startswith(self._NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        else:
            response.headers["Cache-Control"] = "public, max-age=60"

        return response


# ---------------------------------------------------------------------------
# Request size limit middleware
# ---------------------------------------------------------------------------

MAX_BODY_BYTES = 4096       # vote bodies are well under 200 bytes
MAX_HEADER_BYTES = 16_384


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests with oversized bodies (413) or headers (431)."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        header_size = sum(
            len(k) + len(v) for k, v in request.headers.raw
        )
        if header_size > MAX_HEADER_BYTES:
            return Response(
                content='{"error":"Request headers too large"}',
                status_code=431,
                media_type="application/json",
            )

        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                too_large = int(content_length) > MAX_BODY_BYTES
            except ValueError:
                too_large = False
            if too_large:
                return Response(
                    content='{"error":"Request body too large"}',
                    status_code=413,
                    media_type="application/json",
                )

        return await call_next(request)


# ---------------------------------------------------------------------------
# Structured request logging
# ---------------------------------------------------------------------------

def _mask_ip(ip: str | None) -> str:
    """Truncate IP for privacy: first two IPv4 octets, first four IPv6 groups."""
    if not ip:
        return "unknown"
    if ":" in ip:
        parts = ip.split(":")
        return ":".join(parts[:4]) + "::*"
    parts = ip.split(".")
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.*.*"
    return "unknown"


def _log_request(
    request: Request,
    status_code: int,
    latency_ms: float,
    request_id: str,
) -> None:
    """Emit a structured JSON log line for the request."""
    log_data = {
        "event": "http_request",
        "method": request.method,
        "path": request.url.path,
        "status": status_code,
        "latency_ms": latency_ms,
        "client_ip": _mask_ip(request.client.host if request.client else None),
        "request_id": request_id,
    }
    if status_code >= 500:
        logger.error(json.dumps(log_data))
    elif status_code >= 400:
        logger.warning(json.dumps(log_data))
    else:
        logger.info(json.dumps(log_data))
