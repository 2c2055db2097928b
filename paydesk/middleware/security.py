"""
PayDesk - Security Middleware

FastAPI middleware for:
1. Rate Limiting (registration and login)
2. Security Headers
3. Request Logging
"""

import time
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from paydesk.config import Settings
from paydesk.utils.error_handling import RateLimitException, create_error_response

logger = logging.getLogger(__name__)


def _client_ip(request: Request, trusted_proxies: Sequence[str] = ()) -> str:
    peer = request.client.host if request.client else "127.0.0.1"
    # X-Forwarded-For is client controlled unless the peer is our own proxy
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and peer in trusted_proxies:
        return forwarded.split(",")[0].strip()
    return peer


# ============================================================================
# RATE LIMITING
# ============================================================================

class RateLimiter:
    """
    Sliding-window request counter, per client IP and path.

    Only paths listed in ``rules`` are limited. One instance lives on
    ``app.state.rate_limiter`` so it can be inspected and reset. Clients
    whose hits have all expired are dropped.
    """

    sweep_interval = 60

    def __init__(self, rules: Dict[str, Tuple[int, int]]):
        # {path: (max_requests, window_seconds)}
        self.rules = dict(rules)
        self._requests: Dict[str, Dict[str, List[float]]] = {}
        self._last_sweep = time.time()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        window = settings.rate_limit_window_seconds
        prefix = settings.api_prefix
        return cls({
            f"{prefix}/auth/register": (settings.rate_limit_register_requests, window),
            f"{prefix}/auth/login": (settings.rate_limit_login_requests, window),
        })

    @property
    def tracked_clients(self) -> int:
        return len(self._requests)

    def check(self, ip: str, path: str) -> Tuple[bool, int, int]:
        """
        Count a request.

        Returns:
            Tuple of (allowed, retry_after_seconds, remaining)
        """
        limit, window = self.rules[path]
        now = time.time()
        if now - self._last_sweep >= self.sweep_interval:
            self.sweep(now)

        cutoff = now - window
        per_path = self._requests.setdefault(ip, {})
        hits = [t for t in per_path.get(path, []) if t > cutoff]

        if len(hits) >= limit:
            per_path[path] = hits
            retry_after = int(min(hits) + window - now)
            return False, max(1, retry_after), 0

        hits.append(now)
        per_path[path] = hits
        return True, 0, limit - len(hits)

    def sweep(self, now: Optional[float] = None) -> None:
        """Forget hits older than their window and clients left with none."""
        now = now if now is not None else time.time()
        for ip in list(self._requests):
            per_path = self._requests[ip]
            for path in list(per_path):
                window = self.rules.get(path, (0, 0))[1]
                hits = [t for t in per_path[path] if t > now - window]
                if hits:
                    per_path[path] = hits
                else:
                    del per_path[path]
            if not per_path:
                del self._requests[ip]
        self._last_sweep = now

    def reset(self) -> None:
        self._requests.clear()


class RateLimitingMiddleware(BaseHTTPMiddleware):
    """Reject requests over the configured limit with 429 and Retry-After."""

    def __init__(
        self,
        app: FastAPI,
        limiter: RateLimiter,
        enabled: bool = True,
        trusted_proxies: Sequence[str] = (),
    ):
        super().__init__(app)
        self.limiter = limiter
        self.enabled = enabled
        self.trusted_proxies = tuple(trusted_proxies)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path.rstrip("/")
        if not self.enabled or request.method != "POST" or path not in self.limiter.rules:
            return await call_next(request)

        client_ip = _client_ip(request, self.trusted_proxies)
        allowed, retry_after, remaining = self.limiter.check(client_ip, path)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_ip} on {path}")
            exc = RateLimitException(retry_after=retry_after)
            return create_error_response(
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                details=exc.details,
                headers=exc.headers,
            )

        response = await call_next(request)
        limit, window = self.limiter.rules[path]
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(int(time.time()) + window)
        return response


# ============================================================================
# SECURITY HEADERS MIDDLEWARE
# ============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Headers:
    - X-Content-Type-Options
    - X-Frame-Options
    - Strict-Transport-Security (production only)
    - Referrer-Policy
    """

    def __init__(self, app: FastAPI, development_mode: bool = False):
        super().__init__(app)
        self.development_mode = development_mode

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if not self.development_mode:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


# ============================================================================
# REQUEST LOGGING MIDDLEWARE
# ============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log requests to sensitive paths and every failed request.

    Logs method, path, status, timing and client IP.
    """

    SENSITIVE_SEGMENTS = ("/auth", "/salary-slips")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        client_ip = _client_ip(request)
        path = request.url.path
        method = request.method

        response = await call_next(request)

        duration = time.time() - start_time
        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        is_sensitive = any(segment in path for segment in self.SENSITIVE_SEGMENTS)

        if is_sensitive or response.status_code >= 400:
            logger.log(
                log_level,
                f"{method} {path} - {response.status_code} - {duration:.3f}s - {client_ip}",
                extra={
                    "method": method,
                    "path": path,
                    "status": response.status_code,
                    "duration": duration,
                    "client_ip": client_ip,
                },
            )

        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response


# ============================================================================
# SETUP FUNCTION
# ============================================================================

def setup_security_middleware(
    app: FastAPI,
    settings: Settings,
    limiter: Optional[RateLimiter] = None,
) -> RateLimiter:
    """
    Setup all security middleware for the application.

    Returns:
        The rate limiter in use (also stored on ``app.state.rate_limiter``)
    """
    limiter = limiter or RateLimiter.from_settings(settings)
    app.state.rate_limiter = limiter

    # Order matters! Later middleware wraps earlier ones
    app.add_middleware(
        RateLimitingMiddleware,
        limiter=limiter,
        enabled=settings.rate_limit_enabled,
        trusted_proxies=settings.trusted_proxies_list,
    )
    app.add_middleware(SecurityHeadersMiddleware, development_mode=not settings.is_production)
    app.add_middleware(RequestLoggingMiddleware)

    logger.info(
        f"Security middleware configured: "
        f"rate_limiting={settings.rate_limit_enabled}, "
        f"production={settings.is_production}"
    )
    return limiter
