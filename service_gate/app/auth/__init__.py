"""
Authentication helpers for the gate service.
"""

from .authenticator import Authenticator, error_response, inject_bearer, set_cors_headers
from .jwks import JWKSValidator

__all__ = [
    "Authenticator",
    "JWKSValidator",
    "error_response",
    "inject_bearer",
    "set_cors_headers",
]
