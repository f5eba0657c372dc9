"""
Generic outbound HTTP client used to call the identity provider.

The client is a thin capability: POST a JSON body to a path under a base URL
and hand back the raw status code and body bytes. Interpreting the response is
left to the caller.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import httpx

from shared.config import ClientConfig
from shared.logging import get_logger
from shared.retry import RetryConfig, call_with_retry


@dataclass(frozen=True)
class ClientResponse:
    """Status code and undecoded body of an outbound call."""

    status_code: int
    body: bytes

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


class HTTPClient:
    """Async HTTP client bound to a single base URL."""

    def __init__(self, config: ClientConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        parts = urlsplit(config.url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"client url must be an absolute http(s) URL, got {config.url!r}")
        if config.timeout <= 0:
            raise ValueError(f"client timeout must be positive, got {config.timeout}")
        if config.retry_attempts < 1:
            raise ValueError(f"client retry_attempts must be at least 1, got {config.retry_attempts}")

        self.base_url = config.url.rstrip("/")
        self.retry_config = RetryConfig(
            max_attempts=config.retry_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )
        self.logger = get_logger("gate.http_client")
        self._client = httpx.AsyncClient(
            timeout=config.timeout,
            headers=config.headers,
            transport=transport,
        )

    def url_for(self, path: str) -> str:
        """Join ``path`` onto the base URL."""
        return f"{self.base_url}/{path.lstrip('/')}"

    async def post_with_context(self,
                                path: str,
                                headers: Optional[Dict[str, str]] = None,
                                body: Any = None) -> ClientResponse:
        """POST ``body`` as JSON to ``path``.

        Transport failures are retried per the client's retry policy and
        surface as ``shared.retry.RetryError`` once exhausted. Cancellation of
        the calling task aborts the in-flight request.
        """
        url = self.url_for(path)

        async def _post() -> httpx.Response:
            return await self._client.post(url, headers=headers, json=body)

        response = await call_with_retry(
            _post,
            exceptions=(httpx.TransportError,),
            config=self.retry_config,
        )

        self.logger.debug("Outbound call completed", method="POST", url=url, status_code=response.status_code)
        return ClientResponse(status_code=response.status_code, body=response.content)

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()
