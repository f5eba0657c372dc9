"""
JSON Web Key Set (JWKS) validation for bearer tokens issued by the identity provider.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx
from jose import jwt
from jose.exceptions import JOSEError, JWTError
from starlette.requests import Request

from shared.errors import ValidationError
from shared.logging import get_logger


class JWKSValidator:
    """Validates the bearer token on a request against a remote JWKS endpoint.

    A validator fetches the key set at most once and is meant to live for a
    single request; it keeps no state across requests.
    """

    def __init__(
        self,
        jwks_url: str,
        audience: Sequence[str],
        issuer: str,
        algorithm: str = "RS256",
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ) -> None:
        self.jwks_url = jwks_url
        self.audience = list(audience)
        self.issuer = issuer
        self.algorithm = algorithm
        self.logger = get_logger("gate.auth.jwks")

        self._keys: Optional[List[Dict[str, Any]]] = None
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        """Close the HTTP client if this validator created it."""
        if self._owns_client:
            await self._client.aclose()

    async def validate_request(self, request: Request) -> Dict[str, Any]:
        """Validate the request's bearer token and return its claims."""
        authorization = request.headers.get("Authorization")
        if not authorization:
            raise ValidationError("Missing Authorization header")

        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer":
            raise ValidationError("Authorization header is not a bearer token")

        token = token.strip()
        if not token:
            raise ValidationError("Authorization header contained empty bearer token")

        return await self.validate_token(token)

    async def validate_token(self, token: str) -> Dict[str, Any]:
        """Verify signature, issuer, audience and expiry of ``token``."""
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise ValidationError("Malformed bearer token", details={"error": str(exc)}) from exc

        if header.get("alg") != self.algorithm:
            raise ValidationError(
                "Unexpected signing algorithm",
                details={"expected": self.algorithm, "received": header.get("alg")},
            )

        kid = header.get("kid")
        if not isinstance(kid, str):
            raise ValidationError("JWT header missing key id (kid)")

        key_data = await self._get_key(kid)
        if key_data is None:
            raise ValidationError("Signing key not found for token", details={"kid": kid})

        try:
            claims = jwt.decode(
                token,
                key_data,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"verify_aud": False},
            )
        except (JOSEError, TypeError, ValueError) as exc:
            raise ValidationError("JWT validation failed", details={"error": str(exc)}) from exc

        self._check_audience(claims)
        return claims

    def _check_audience(self, claims: Dict[str, Any]) -> None:
        """Require at least one token audience to match an expected audience."""
        token_audience = claims.get("aud")
        if isinstance(token_audience, str):
            token_audience = [token_audience]
        if not isinstance(token_audience, list) or not set(token_audience) & set(self.audience):
            raise ValidationError(
                "Token audience does not match",
                details={"expected": self.audience, "received": claims.get("aud")},
            )

    async def _get_key(self, kid: str) -> Optional[Dict[str, Any]]:
        """Return the JWK matching ``kid``."""
        if self._keys is None:
            self._keys = await self._fetch_keys()

        for key in self._keys:
            if key.get("kid") == kid:
                return key
        return None

    async def _fetch_keys(self) -> List[Dict[str, Any]]:
        try:
            response = await self._client.get(self.jwks_url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.warning("JWKS fetch failed", url=self.jwks_url, error=str(exc))
            raise ValidationError("Could not fetch signing keys", details={"error": str(exc)}) from exc

        keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(keys, list):
            raise ValidationError("JWKS response missing 'keys' array")

        return [key for key in keys if isinstance(key, dict)]
