"""
OAuth gate service package.

The gate fronts protected handlers, enforcing:
- Service identity: a client-credentials exchange with the identity provider per request
- Authentication: bearer validation against the provider's JWKS
- Cross-origin access: a fixed CORS allowlist

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.auth: Authenticator middleware and JWKS validator.
- app.cors: CORS wrapper for the ASGI app.
"""
