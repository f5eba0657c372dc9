"""
Cross-origin wrapper for the gate's ASGI application.
"""

from fastapi.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

ALL_ORIGINS = "*"

BASIC_METHODS = ["DELETE", "GET", "POST", "PUT"]

ALLOWED_HEADERS = ["X-Requested-With", "Content-Type", "Authorization"]


def cors_handler(app: ASGIApp) -> ASGIApp:
    """Wrap ``app`` with the fixed CORS allowlist."""
    return CORSMiddleware(
        app,
        allow_origins=[ALL_ORIGINS],
        allow_methods=BASIC_METHODS,
        allow_headers=ALLOWED_HEADERS,
    )
