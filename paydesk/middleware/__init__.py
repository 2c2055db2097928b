"""
PayDesk - Middleware Package

Security and utility middleware for FastAPI.
"""

from paydesk.middleware.security import (
    RateLimiter,
    RateLimitingMiddleware,
    SecurityHeadersMiddleware,
    RequestLoggingMiddleware,
    setup_security_middleware,
)

__all__ = [
    "RateLimiter",
    "RateLimitingMiddleware",
    "SecurityHeadersMiddleware",
    "RequestLoggingMiddleware",
    "setup_security_middleware",
]
