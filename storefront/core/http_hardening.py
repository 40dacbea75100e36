from __future__ import annotations

import logging
import re
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from storefront.core.config import settings
from storefront.services.rate_limit import RateLimitResult, client_rate_limit_key, get_rate_limiter

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_LOG = logging.getLogger("storefront.http")

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "style-src 'self' 'unsafe-inline'",
        "script-src 'self'",
        "img-src 'self' data: https:",
        "object-src 'none'",
        "frame-ancestors 'none'",
        "base-uri 'self'",
        "form-action 'self'",
    ]
)

SECURITY_HEADERS = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "no-referrer",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=(), payment=(), usb=()",
}


def _request_id_from_header(raw: str | None) -> str:
    value = str(raw or "").strip()
    if not value:
        return uuid4().hex
    if not _REQUEST_ID_RE.fullmatch(value):
        return uuid4().hex
    return value


def client_ip(request: Request) -> str | None:
    peer = str(request.client.host) if request.client and request.client.host else None
    if peer and peer in settings.trusted_proxies_list:
        forwarded = str(request.headers.get("x-forwarded-for") or "").strip()
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    return peer


def _declared_body_too_large(request: Request) -> bool:
    raw = request.headers.get("content-length")
    if not raw:
        return False
    try:
        return int(raw) > int(settings.MAX_BODY_BYTES)
    except ValueError:
        return True


def _count_request(key: str) -> RateLimitResult:
    # Building the limiter pings Redis and each hit is a round trip; both block.
    return get_rate_limiter().hit(
        key,
        limit=int(settings.RATE_LIMIT_MAX),
        window_seconds=int(settings.RATE_LIMIT_WINDOW_SECONDS),
    )


def install_http_hardening(app: FastAPI) -> None:
    @app.middleware("http")
    async def _rate_limit_middleware(request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED or request.method == "OPTIONS":
            return await call_next(request)
        ip = client_ip(request)
        result = await run_in_threadpool(_count_request, client_rate_limit_key(ip))
        limit_headers = {
            "RateLimit-Limit": str(result.limit),
            "RateLimit-Remaining": str(result.remaining),
            "RateLimit-Reset": str(result.retry_after_seconds),
        }
        if not result.allowed:
            _LOG.warning("rate limit exceeded ip=%s count=%s", ip, result.current_value)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests"},
                headers={**limit_headers, "Retry-After": str(result.retry_after_seconds)},
            )
        response = await call_next(request)
        for key, value in limit_headers.items():
            response.headers[key] = value
        return response

    @app.middleware("http")
    async def _http_hardening_middleware(request: Request, call_next):
        request_id = _request_id_from_header(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started_at = perf_counter()

        if _declared_body_too_large(request):
            response = JSONResponse(status_code=413, content={"detail": "Request body is too large"})
        else:
            response = await call_next(request)

        for key, value in SECURITY_HEADERS.items():
            response.headers[key] = value
        response.headers["Cache-Control"] = "no-store"
        response.headers["Pragma"] = "no-cache"
        response.headers[REQUEST_ID_HEADER] = request_id

        duration_ms = (perf_counter() - started_at) * 1000.0
        _LOG.info(
            "%s %s status=%s duration_ms=%.2f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        _LOG.exception("unhandled error %s %s request_id=%s", request.method, request.url.path, request_id)
        headers = {REQUEST_ID_HEADER: request_id} if request_id else None
        return JSONResponse(status_code=500, content={"detail": "Internal server error"}, headers=headers)
