"""
Auth Service package for the Ascent access layer.

This package establishes who is calling before any handler logic runs.
It is intentionally small and focused:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.initdata: Embedded-client (initData) HMAC verification.
- app.jwks: JWKS client helpers for fetching and caching signing keys.
- app.validation: Bearer token validation against the cached keys.
- app.facade: Single entry point dispatching on the Authorization header.
- app.webhooks: Payment-webhook signature check sharing the HMAC primitives.

Design notes:
- Keep the package import side-effects minimal; module import must not
  perform network calls. All IO should happen in route handlers or
  explicit startup hooks.
- Use the ascent_common utilities for logging, metrics, config and errors.
- Verifiers return typed results; they do not raise for expected failures.
"""
