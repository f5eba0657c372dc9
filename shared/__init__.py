"""
Shared utilities for the OAuth gate.

This package aggregates common building blocks consumed by the services:

- config: Service and identity provider configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry loop for outbound calls
- http_client: Outbound HTTP capability used to reach the identity provider
- base_service: FastAPI service scaffolding

Do not import from service packages into shared/.
"""
