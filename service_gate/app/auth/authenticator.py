"""
Authentication middleware backed by an OAuth2 identity provider.

Every protected request triggers a client-credentials exchange with the
identity provider. The resulting service token is injected as the request's
bearer credential and the request is then validated against the provider's
published signing keys before the wrapped handler runs.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

import httpx
from fastapi.responses import JSONResponse
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import Response

from shared.config import AuthConfig
from shared.errors import (
    ConfigurationError,
    DecodeError,
    GateException,
    TokenExchangeError,
)
from shared.http_client import ClientResponse, HTTPClient
from shared.logging import clear_context, get_logger, set_request_id
from shared.metrics import MetricsCollector
from shared.retry import RetryError

from .jwks import JWKSValidator

# logging/error prefix for identity provider calls
PACKAGE_KEY = "client"

ALL_ORIGINS = "*"

BASIC_METHODS = "DELETE, GET, POST, PUT"

ALLOWED_HEADERS = (
    "Content-Type, Content-Length, Accept-Encoding, X-CSRF-Token, Authorization, "
    "accept, origin, Cache-Control, X-Requested-With"
)

SIGNING_ALGORITHM = "RS256"

TOKEN_PATH = "oauth/token"

JWKS_PATH = "/.well-known/jwks.json"

Endpoint = Callable[[Request], Awaitable[Response]]


class TokenClient(Protocol):
    async def post_with_context(self,
                                path: str,
                                headers: Optional[Dict[str, str]] = None,
                                body: Any = None) -> ClientResponse: ...

    async def aclose(self) -> None: ...


class RequestValidator(Protocol):
    async def validate_request(self, request: Request) -> Dict[str, Any]: ...

    async def aclose(self) -> None: ...


ValidatorFactory = Callable[..., RequestValidator]


class Authenticator:
    """Identity provider settings plus the client used to reach it.

    Holds no per-request state; one instance is shared by all requests.
    """

    def __init__(
        self,
        domain: str,
        identifier: str,
        client_id: str,
        client_secret: str,
        client: TokenClient,
        *,
        validator_factory: ValidatorFactory = JWKSValidator,
        request_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.domain = domain
        self.identifier = identifier
        self.client_id = client_id
        self.client_secret = client_secret
        self.client = client
        self.validator_factory = validator_factory
        self.request_timeout = request_timeout
        self.metrics = metrics
        self.logger = get_logger("gate.authenticator")

    @classmethod
    def new(
        cls,
        application_name: str,
        config: AuthConfig,
        *,
        client: Optional[TokenClient] = None,
        validator_factory: Optional[ValidatorFactory] = None,
        request_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "Authenticator":
        """Configure an authenticator for ``application_name``.

        The audience identifier is ``"https://" + application_name``. No
        network call is made here.
        """
        missing = [
            name for name, value in (
                ("application_name", application_name),
                ("client.url", config.url),
                ("id", config.id),
                ("secret", config.secret),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Authentication config is incomplete",
                details={"missing": missing},
            )

        if client is None:
            try:
                client = HTTPClient(config.client)
            except ValueError as exc:
                raise ConfigurationError(
                    f"{PACKAGE_KEY}: could not build client: {exc}",
                    details={"error": str(exc)},
                ) from exc

        return cls(
            domain=config.url.rstrip("/"),
            identifier="https://" + application_name,
            client_id=config.id,
            client_secret=config.secret,
            client=client,
            validator_factory=validator_factory or JWKSValidator,
            request_timeout=request_timeout,
            metrics=metrics,
        )

    @property
    def jwks_url(self) -> str:
        return self.domain + JWKS_PATH

    @property
    def issuer(self) -> str:
        return self.domain + "/"

    async def aclose(self) -> None:
        """Release the identity provider client."""
        await self.client.aclose()

    def middleware(self, next_handler: Endpoint) -> Endpoint:
        """Wrap ``next_handler`` so it only runs for authenticated requests.

        ``next_handler`` is called with the ``Request`` alone; path parameters
        and bodies are read from the request, not declared as arguments.
        """

        async def wrapped(request: Request) -> Response:
            set_request_id(request.headers.get("X-Request-ID"))
            try:
                response = await self._authenticate(request, next_handler)
            except Exception as exc:
                self.logger.error("Gated request failed", error=str(exc), exc_info=True)
                response = error_response(500, GateException("INTERNAL_ERROR", "Internal server error"))
            finally:
                clear_context()

            set_cors_headers(response)
            return response

        wrapped.__name__ = getattr(next_handler, "__name__", wrapped.__name__)
        wrapped.__doc__ = next_handler.__doc__
        return wrapped

    async def _authenticate(self, request: Request, next_handler: Endpoint) -> Response:
        validator = self.validator_factory(
            self.jwks_url,
            audience=[self.identifier],
            issuer=self.issuer,
            algorithm=SIGNING_ALGORITHM,
        )
        try:
            try:
                token = await self._get_token_within_deadline()
            except GateException as exc:
                self.logger.warning("Token acquisition failed", code=exc.code, error=exc.message)
                return error_response(504, exc)

            request = inject_bearer(request, token)

            try:
                claims = await validator.validate_request(request)
            except GateException as exc:
                self._record_validation(exc.code)
                self.logger.info("Request rejected", code=exc.code, error=exc.message)
                return error_response(401, exc)
        finally:
            await validator.aclose()

        self._record_validation("success")
        request.state.claims = claims
        return await next_handler(request)

    async def _get_token_within_deadline(self) -> str:
        if self.request_timeout is None:
            return await self.get_token()

        try:
            return await asyncio.wait_for(self.get_token(), timeout=self.request_timeout)
        except asyncio.TimeoutError as exc:
            self._record_exchange("TIMEOUT")
            raise TokenExchangeError(
                f"{PACKAGE_KEY}: token exchange timed out",
                details={"timeout": self.request_timeout},
            ) from exc

    async def get_token(self) -> str:
        """Run a client-credentials exchange and return the access token."""
        started = time.perf_counter()
        payload = {
            "audience": self.identifier,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "client_credentials",
        }

        try:
            resp = await self.client.post_with_context(TOKEN_PATH, None, payload)
        except (RetryError, httpx.HTTPError) as exc:
            self._record_exchange("TRANSPORT_ERROR", started)
            raise TokenExchangeError(
                f"{PACKAGE_KEY}: {exc}, could not call client",
                details={"error": str(exc)},
            ) from exc

        if resp.status_code != 200:
            self._record_exchange(f"HTTP_{resp.status_code}", started)
            raise TokenExchangeError(
                f"{PACKAGE_KEY}: identity provider responded {resp.status_code}",
                details={"status_code": resp.status_code, "body": resp.text()},
            )

        try:
            access = resp.json()
        except ValueError as exc:
            self._record_exchange("DECODE_ERROR", started)
            raise DecodeError(
                f"{PACKAGE_KEY}: {exc}, could not unmarshal",
                details={"error": str(exc)},
            ) from exc

        if not isinstance(access, dict):
            self._record_exchange("DECODE_ERROR", started)
            raise DecodeError(f"{PACKAGE_KEY}: token response is not a JSON object, could not unmarshal")

        token = access.get("access_token") or ""
        if not isinstance(token, str):
            self._record_exchange("DECODE_ERROR", started)
            raise DecodeError(f"{PACKAGE_KEY}: access_token is not a string, could not unmarshal")

        if not _header_safe(token):
            self._record_exchange("DECODE_ERROR", started)
            raise DecodeError(f"{PACKAGE_KEY}: access_token cannot be sent in a header")

        self._record_exchange("success", started)
        return token

    def _record_exchange(self, outcome: str, started: Optional[float] = None) -> None:
        if self.metrics is not None:
            duration = None if started is None else time.perf_counter() - started
            self.metrics.record_token_exchange(outcome, duration)

    def _record_validation(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_validation(outcome)


def set_cors_headers(response: Response) -> None:
    """Apply the permissive CORS headers every gated response carries."""
    response.headers["Access-Control-Allow-Origin"] = ALL_ORIGINS
    response.headers["Access-Control-Allow-Methods"] = BASIC_METHODS
    response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS


def inject_bearer(request: Request, token: str) -> Request:
    """Return a request whose Authorization header is ``Bearer <token>``.

    Any caller-supplied Authorization header is replaced.
    """
    headers = MutableHeaders(scope=request.scope)
    headers["Authorization"] = f"Bearer {token}"
    return Request(request.scope, request.receive)


def _header_safe(value: str) -> bool:
    if "\r" in value or "\n" in value:
        return False
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return True


def error_response(status_code: int, exc: GateException) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=exc.to_response().model_dump())
