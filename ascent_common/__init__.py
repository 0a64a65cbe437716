"""
Shared utilities for the Ascent access layer.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation and redaction
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service skeleton (middleware, health, metrics)
- test_helpers: credential, key and key-set factories for tests

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into ascent_common/.
"""
