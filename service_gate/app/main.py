"""
OAuth gate service.

Serves a protected API behind the client-credentials authenticator, with the
fixed CORS allowlist applied to the whole application.
"""

from typing import Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from shared.base_service import BaseService
from shared.config import AuthConfig, ServiceConfig, get_auth_config, get_config

from .auth import Authenticator
from .cors import BASIC_METHODS, cors_handler


class GateService(BaseService):
    """Gate service implementation."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 auth_config: Optional[AuthConfig] = None,
                 authenticator: Optional[Authenticator] = None):
        config = config or get_config("gate", 8000)
        self.auth_config = auth_config
        self._authenticator = authenticator
        super().__init__(config.service_name, config.port, config=config)

        # Misconfiguration raises here and keeps the service from starting
        if self._authenticator is None:
            self._authenticator = Authenticator.new(
                self.config.app_name,
                self.auth_config or get_auth_config(),
                request_timeout=self.config.request_timeout,
                metrics=self.metrics,
            )

        self._setup_gate_routes()
        self._asgi_app = cors_handler(self.app)

    @property
    def authenticator(self) -> Authenticator:
        return self._authenticator

    @property
    def asgi_app(self):
        return self._asgi_app

    def _setup_gate_routes(self):
        """Set up gate-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "OAuth request-authentication gate",
                "version": "1.0.0",
                "audience": self.authenticator.identifier,
            }

        async def protected(request: Request) -> Response:
            """Echo the identity proven by the validated bearer token."""
            claims = request.state.claims
            return JSONResponse({
                "subject": claims.get("sub"),
                "audience": claims.get("aud"),
                "issuer": claims.get("iss"),
                "method": request.method,
            })

        self.app.add_api_route(
            "/api/protected",
            self.authenticator.middleware(protected),
            methods=BASIC_METHODS,
        )

    async def _check_dependencies(self) -> Dict[str, str]:
        # Configuration only; probing the identity provider would cost a token exchange
        return {"identity_provider": self.authenticator.domain}

    async def _shutdown(self) -> None:
        await self.authenticator.aclose()


def create_app(config: Optional[ServiceConfig] = None,
               auth_config: Optional[AuthConfig] = None,
               authenticator: Optional[Authenticator] = None):
    """Create the CORS-wrapped ASGI application."""
    service = GateService(config=config, auth_config=auth_config, authenticator=authenticator)
    return service.asgi_app


if __name__ == "__main__":
    service = GateService()
    service.run()
