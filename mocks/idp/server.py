"""
Mock OAuth2 identity provider issuing RS256 client-credentials tokens and serving its JWKS.
"""

import base64
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from shared.logging import get_logger


class TokenRequest(BaseModel):
    """Client-credentials token request body."""
    audience: str
    client_id: str
    client_secret: str
    grant_type: str


def _b64url_uint(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class MockIdentityProvider:
    """Mock identity provider implementation."""

    def __init__(self,
                 base_url: str = "http://idp.test",
                 clients: Optional[Dict[str, str]] = None,
                 token_lifetime: int = 3600):
        self.base_url = base_url.rstrip("/")
        self.issuer = self.base_url + "/"
        self.clients = clients if clients is not None else {"gate-client": "gate-secret"}
        self.token_lifetime = token_lifetime
        self.logger = get_logger("mock.idp")
        self.app = FastAPI(title="Mock Identity Provider", version="1.0.0")

        # Every token request seen, for assertions in tests
        self.token_requests: List[Dict[str, Any]] = []

        self.kid = f"mock-key-{uuid.uuid4().hex[:8]}"
        self._private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        self.private_pem = self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

        self._setup_routes()

    @property
    def jwks(self) -> Dict[str, Any]:
        numbers = self._private_key.public_key().public_numbers()
        return {
            "keys": [
                {
                    "kty": "RSA",
                    "kid": self.kid,
                    "use": "sig",
                    "alg": "RS256",
                    "n": _b64url_uint(numbers.n),
                    "e": _b64url_uint(numbers.e),
                }
            ]
        }

    def _setup_routes(self):
        """Set up mock identity provider routes."""

        @self.app.get("/.well-known/jwks.json")
        async def jwks_endpoint():
            """JWKS endpoint."""
            return self.jwks

        @self.app.post("/oauth/token")
        async def token_endpoint(body: TokenRequest):
            """Client-credentials token endpoint."""
            self.token_requests.append(body.model_dump())

            if body.grant_type != "client_credentials":
                raise HTTPException(status_code=400, detail="unsupported_grant_type")

            if self.clients.get(body.client_id) != body.client_secret:
                raise HTTPException(status_code=401, detail="access_denied")

            return {
                "access_token": self.issue_token(sub=f"{body.client_id}@clients", aud=body.audience),
                "expires_in": self.token_lifetime,
                "token_type": "Bearer",
            }

    def issue_token(self,
                    sub: str,
                    aud: Any,
                    issuer: Optional[str] = None,
                    expires_in: Optional[int] = None,
                    kid: Optional[str] = None,
                    **claims: Any) -> str:
        """Sign an RS256 access token with the provider's key."""
        now = datetime.now(timezone.utc)
        lifetime = self.token_lifetime if expires_in is None else expires_in
        payload = {
            "iss": issuer or self.issuer,
            "sub": sub,
            "aud": aud,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=lifetime)).timestamp()),
            "gty": "client-credentials",
            **claims,
        }
        return jwt.encode(payload, self.private_pem, algorithm="RS256", headers={"kid": kid or self.kid})


def create_app():
    """Create mock identity provider application."""
    server = MockIdentityProvider(base_url="http://localhost:8080")
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8080)
