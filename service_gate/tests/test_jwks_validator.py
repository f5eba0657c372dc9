"""
Unit tests for JWKSValidator.
"""

from typing import Optional

import httpx
import jwt
import pytest
import pytest_asyncio
from starlette.requests import Request

from mocks.idp.server import MockIdentityProvider
from service_gate.app.auth import JWKSValidator
from shared.errors import ValidationError

AUDIENCE = "https://orders-service"
JWKS_URL = "http://idp.test/.well-known/jwks.json"
ISSUER = "http://idp.test/"


def make_request(authorization: Optional[str] = None) -> Request:
    headers = []
    if authorization is not None:
        headers.append((b"authorization", authorization.encode("latin-1")))
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": headers,
    })


@pytest.fixture(scope="module")
def idp():
    """Mock identity provider with a freshly generated signing key."""
    return MockIdentityProvider(base_url="http://idp.test")


@pytest_asyncio.fixture
async def http_client(idp):
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=idp.app))
    yield client
    await client.aclose()


@pytest.fixture
def validator(http_client):
    return JWKSValidator(JWKS_URL, [AUDIENCE], ISSUER, "RS256", http_client=http_client)


class TestJWKSValidator:
    """Test cases for JWKSValidator."""

    @pytest.mark.asyncio
    async def test_validate_request_success(self, idp, validator):
        token = idp.issue_token(sub="svc@clients", aud=AUDIENCE)

        claims = await validator.validate_request(make_request(f"Bearer {token}"))

        assert claims["sub"] == "svc@clients"
        assert claims["iss"] == ISSUER

    @pytest.mark.asyncio
    async def test_audience_list_with_match(self, idp, validator):
        token = idp.issue_token(sub="svc@clients", aud=["https://other", AUDIENCE])

        claims = await validator.validate_request(make_request(f"Bearer {token}"))

        assert AUDIENCE in claims["aud"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("authorization", [None, "Basic dXNlcjpwYXNz", "Bearer ", "Bearer not-a-jwt"])
    async def test_missing_or_malformed_bearer(self, validator, authorization):
        with pytest.raises(ValidationError):
            await validator.validate_request(make_request(authorization))

    @pytest.mark.asyncio
    async def test_wrong_audience(self, idp, validator):
        token = idp.issue_token(sub="svc@clients", aud="https://billing-service")

        with pytest.raises(ValidationError) as exc_info:
            await validator.validate_request(make_request(f"Bearer {token}"))

        assert exc_info.value.message == "Token audience does not match"

    @pytest.mark.asyncio
    async def test_wrong_issuer(self, idp, validator):
        token = idp.issue_token(sub="svc@clients", aud=AUDIENCE, issuer="http://evil.test/")

        with pytest.raises(ValidationError) as exc_info:
            await validator.validate_request(make_request(f"Bearer {token}"))

        assert exc_info.value.message == "JWT validation failed"

    @pytest.mark.asyncio
    async def test_expired_token(self, idp, validator):
        token = idp.issue_token(sub="svc@clients", aud=AUDIENCE, expires_in=-60)

        with pytest.raises(ValidationError):
            await validator.validate_request(make_request(f"Bearer {token}"))

    @pytest.mark.asyncio
    async def test_unknown_key_id(self, idp, validator):
        token = idp.issue_token(sub="svc@clients", aud=AUDIENCE, kid="rotated-away")

        with pytest.raises(ValidationError) as exc_info:
            await validator.validate_request(make_request(f"Bearer {token}"))

        assert exc_info.value.details == {"kid": "rotated-away"}

    @pytest.mark.asyncio
    async def test_signature_from_foreign_key(self, idp, validator):
        """A token signed by another key under a known kid is rejected."""
        impostor = MockIdentityProvider(base_url="http://idp.test")
        token = impostor.issue_token(sub="svc@clients", aud=AUDIENCE, kid=idp.kid)

        with pytest.raises(ValidationError) as exc_info:
            await validator.validate_request(make_request(f"Bearer {token}"))

        assert exc_info.value.message == "JWT validation failed"

    @pytest.mark.asyncio
    async def test_symmetric_algorithm_rejected(self, validator):
        token = jwt.encode({"sub": "svc", "aud": AUDIENCE, "iss": ISSUER}, "shared-secret-long-enough-for-hmac-sha256", algorithm="HS256")

        with pytest.raises(ValidationError) as exc_info:
            await validator.validate_request(make_request(f"Bearer {token}"))

        assert exc_info.value.details["received"] == "HS256"

    @pytest.mark.asyncio
    async def test_jwks_fetch_failure(self, idp):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="unavailable"))
        async with httpx.AsyncClient(transport=transport) as client:
            validator = JWKSValidator(JWKS_URL, [AUDIENCE], ISSUER, http_client=client)
            token = idp.issue_token(sub="svc@clients", aud=AUDIENCE)

            with pytest.raises(ValidationError) as exc_info:
                await validator.validate_request(make_request(f"Bearer {token}"))

        assert exc_info.value.message == "Could not fetch signing keys"

    @pytest.mark.asyncio
    async def test_jwks_without_keys_array(self, idp):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"issuer": ISSUER}))
        async with httpx.AsyncClient(transport=transport) as client:
            validator = JWKSValidator(JWKS_URL, [AUDIENCE], ISSUER, http_client=client)
            token = idp.issue_token(sub="svc@clients", aud=AUDIENCE)

            with pytest.raises(ValidationError):
                await validator.validate_request(make_request(f"Bearer {token}"))

    @pytest.mark.asyncio
    async def test_malformed_key_under_matching_kid(self, idp):
        """A published key missing its modulus fails validation instead of escaping."""
        broken = {"keys": [{"kty": "RSA", "kid": idp.kid, "alg": "RS256", "e": "AQAB"}]}
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=broken))
        async with httpx.AsyncClient(transport=transport) as client:
            validator = JWKSValidator(JWKS_URL, [AUDIENCE], ISSUER, http_client=client)
            token = idp.issue_token(sub="svc@clients", aud=AUDIENCE)

            with pytest.raises(ValidationError) as exc_info:
                await validator.validate_request(make_request(f"Bearer {token}"))

        assert exc_info.value.message == "JWT validation failed"

    @pytest.mark.asyncio
    async def test_keys_fetched_once_per_validator(self, idp):
        fetches = []

        def serve_jwks(request: httpx.Request) -> httpx.Response:
            fetches.append(str(request.url))
            return httpx.Response(200, json=idp.jwks)

        async with httpx.AsyncClient(transport=httpx.MockTransport(serve_jwks)) as client:
            validator = JWKSValidator(JWKS_URL, [AUDIENCE], ISSUER, http_client=client)
            for _ in range(2):
                token = idp.issue_token(sub="svc@clients", aud=AUDIENCE)
                await validator.validate_request(make_request(f"Bearer {token}"))

        assert fetches == [JWKS_URL]

    @pytest.mark.asyncio
    async def test_aclose_only_closes_owned_client(self, http_client):
        borrowed = JWKSValidator(JWKS_URL, [AUDIENCE], ISSUER, http_client=http_client)
        await borrowed.aclose()
        assert not http_client.is_closed

        owned = JWKSValidator(JWKS_URL, [AUDIENCE], ISSUER)
        await owned.aclose()
        assert owned._client.is_closed
