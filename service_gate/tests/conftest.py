"""
Shared fakes for gate service tests.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from shared.config import AuthConfig
from shared.errors import ValidationError
from shared.http_client import ClientResponse


class FakeTokenClient:
    """Stand-in for the identity provider HTTP client."""

    def __init__(self,
                 status_code: int = 200,
                 body: bytes = b'{"access_token":"T"}',
                 exc: Optional[Exception] = None,
                 delay: Optional[float] = None):
        self.status_code = status_code
        self.body = body
        self.exc = exc
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def post_with_context(self, path, headers=None, body=None):
        self.calls.append({"path": path, "headers": headers, "body": body})
        if self.delay is not None:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return ClientResponse(status_code=self.status_code, body=self.body)

    async def aclose(self):
        self.closed = True


class FakeValidatorFactory:
    """Builds validators that record what they saw and accept or reject."""

    def __init__(self, claims: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.claims = claims if claims is not None else {"sub": "svc@clients", "aud": "https://orders-service"}
        self.error = error
        self.constructed: List[Dict[str, Any]] = []
        self.seen_authorization: List[Optional[str]] = []
        self.closed = 0

    def __call__(self, jwks_url, audience, issuer, algorithm="RS256"):
        self.constructed.append({
            "jwks_url": jwks_url,
            "audience": audience,
            "issuer": issuer,
            "algorithm": algorithm,
        })
        return _FakeValidator(self)


class _FakeValidator:
    def __init__(self, factory: FakeValidatorFactory):
        self.factory = factory

    async def validate_request(self, request):
        self.factory.seen_authorization.append(request.headers.get("Authorization"))
        if self.factory.error is not None:
            raise self.factory.error
        return dict(self.factory.claims)

    async def aclose(self):
        self.factory.closed += 1


@pytest.fixture
def auth_config():
    """Identity provider settings for the orders service."""
    return AuthConfig(id="abc", secret="xyz", client={"url": "https://idp.example.com"})


@pytest.fixture
def token_client():
    return FakeTokenClient()


@pytest.fixture
def validator_factory():
    return FakeValidatorFactory()


@pytest.fixture
def rejecting_validator_factory():
    return FakeValidatorFactory(error=ValidationError("JWT validation failed", details={"error": "bad signature"}))


@pytest.fixture
def make_token_client():
    """Factory for token clients with a chosen response or failure."""
    return FakeTokenClient
