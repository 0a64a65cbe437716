"""
JWKS client package.

Contains logic for retrieving and caching JSON Web Key Sets (JWKS) used
to verify JWT signatures issued by the identity backend.

Key points:
- Keep network fetches bounded (timeouts, single-flight, fetch-rate ceiling).
- Cache keys for the configured TTL to avoid hammering the backend.
- Index keys by kid; every key carries the algorithm it verifies with.
"""

from .client import HttpKeySetSource, KeySetFetchError, KeySetSource, SigningKeyCache, load_signing_key
from .rate_limit import FetchRateLimiter

__all__ = [
    "FetchRateLimiter",
    "HttpKeySetSource",
    "KeySetFetchError",
    "KeySetSource",
    "SigningKeyCache",
    "load_signing_key",
]
