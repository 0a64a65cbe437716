"""
JWKS client for the identity backend.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import nullcontext
from typing import Any, Dict, Optional, Protocol, Union

import httpx
from jose import jwk
from jose.exceptions import JWKError

from ascent_common.errors import ExternalServiceError
from ascent_common.logging import get_logger
from ascent_common.metrics import MetricsCollector

from ..models import ErrorKind, KeyCacheEntry, Rejected, SigningKey
from .rate_limit import FetchRateLimiter

SUPPORTED_ALGORITHMS = frozenset({"RS256", "RS384", "RS512", "ES256", "ES384", "ES512"})
_FAMILY_PREFIX = {"RSA": "RS", "EC": "ES"}
_EC_CURVE_ALGORITHMS = {"P-256": "ES256", "P-384": "ES384", "P-521": "ES512"}


class KeySetFetchError(ExternalServiceError):
    """The key-set endpoint could not be reached or returned an unusable document."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("jwks", message, details)


class KeySetSource(Protocol):
    """Anything that can produce a JWKS document (``{"keys": [...]}``)."""

    async def fetch(self) -> Dict[str, Any]:
        ...


class HttpKeySetSource:
    """Fetches the key set over HTTP."""

    def __init__(self, jwks_url: str, http_timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.jwks_url = jwks_url
        self._client = client or httpx.AsyncClient(timeout=http_timeout)

    async def fetch(self) -> Dict[str, Any]:
        try:
            response = await self._client.get(self.jwks_url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise KeySetFetchError(
                "unexpected status from key-set endpoint",
                details={"status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise KeySetFetchError(f"transport error: {exc.__class__.__name__}") from exc
        except ValueError as exc:
            raise KeySetFetchError("key-set endpoint returned invalid JSON") from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("keys"), list):
            raise KeySetFetchError("JWKS response missing 'keys' array")
        return payload

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


def key_algorithm(jwk_data: Dict[str, Any]) -> Optional[str]:
    """Algorithm a JWK verifies with, or None if the key is not usable.

    The JWK's own ``alg`` wins when present but must belong to the key's
    family (and, for EC keys, match the curve). Without ``alg`` the family
    default is used.
    """
    kty = jwk_data.get("kty")
    prefix = _FAMILY_PREFIX.get(kty)
    if prefix is None:
        return None

    curve_algorithm = _EC_CURVE_ALGORITHMS.get(jwk_data.get("crv")) if kty == "EC" else None
    alg = jwk_data.get("alg")
    if alg:
        if alg not in SUPPORTED_ALGORITHMS or not alg.startswith(prefix):
            return None
        if kty == "EC" and alg != curve_algorithm:
            return None
        return alg

    return "RS256" if kty == "RSA" else curve_algorithm


def load_signing_key(jwk_data: Any) -> SigningKey:
    """Build a :class:`SigningKey` from one entry of a key set.

    Raises ValueError (or JWKError) for entries that must not be trusted.
    """
    if not isinstance(jwk_data, dict):
        raise ValueError("key entry is not an object")

    kid = jwk_data.get("kid")
    if not isinstance(kid, str) or not kid:
        raise ValueError("key entry has no kid")

    use = jwk_data.get("use")
    if use is not None and use != "sig":
        raise ValueError(f"key {kid} is not a signing key (use={use})")

    algorithm = key_algorithm(jwk_data)
    if algorithm is None:
        raise ValueError(f"key {kid} has unsupported type or algorithm")

    # Only the public half is kept even if the entry leaks private parameters.
    try:
        public_key = jwk.construct(jwk_data, algorithm).public_key()
    except (ValueError, TypeError, AttributeError) as exc:
        raise JWKError(f"key {kid} could not be loaded: {exc.__class__.__name__}") from exc
    return SigningKey(
        kid=kid,
        algorithm=algorithm,
        key_type=jwk_data["kty"],
        public_key_material=public_key.to_pem(),
    )


class SigningKeyCache:
    """Process-wide kid -> key cache backed by the identity backend's JWKS.

    - Fresh hits never touch the network.
    - Misses and stale entries trigger one refresh that replaces the cache
      wholesale; concurrent callers share that single in-flight fetch.
    - Refreshes are capped by a fetch-rate ceiling; when the ceiling is hit a
      stale entry is served if one exists, otherwise the kid is unknown.
    - No automatic retries; callers decide whether to retry KEY_FETCH_FAILED.
    """

    def __init__(
        self,
        source: KeySetSource,
        *,
        ttl: float = 86400,
        requests_per_minute: int = 5,
        fetch_timeout: float = 5.0,
        clock=time.monotonic,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.source = source
        self.ttl = ttl
        self.fetch_timeout = fetch_timeout
        self.metrics = metrics
        self.fetch_count = 0
        self.logger = get_logger("auth.jwks")

        self._clock = clock
        self._limiter = FetchRateLimiter(requests_per_minute, 60.0, clock=clock)
        self._entries: Dict[str, KeyCacheEntry] = {}
        self._inflight: Optional[asyncio.Future] = None

    def _is_fresh(self, entry: KeyCacheEntry) -> bool:
        return self._clock() - entry.fetched_at < self.ttl

    async def get_key(self, kid: str) -> Union[SigningKey, Rejected]:
        """Return the signing key for ``kid`` or the reason it is unavailable."""
        entry = self._entries.get(kid)
        if entry is not None and self._is_fresh(entry):
            return entry.key

        failure = await self.refresh()
        if failure is not None:
            if entry is not None and failure.kind is ErrorKind.KEY_NOT_FOUND:
                self.logger.warning("Serving stale signing key while refresh is rate limited", kid=kid)
                return entry.key
            return failure

        refreshed = self._entries.get(kid)
        if refreshed is None:
            self.logger.warning("Key not found", kid=kid)
            return Rejected(ErrorKind.KEY_NOT_FOUND, f"kid {kid!r} not in key set")
        return refreshed.key

    async def refresh(self) -> Optional[Rejected]:
        """Refresh the key set, joining an in-flight fetch if there is one."""
        task = self._inflight
        # No await between the check and the assignment, so two callers on the
        # event loop cannot both start a fetch.
        if task is None or task.done():
            if not self._limiter.try_acquire():
                self.logger.warning(
                    "JWKS fetch rate limit reached",
                    retry_after=round(self._limiter.reset_in_seconds(), 1),
                )
                self._record_fetch("rate_limited")
                return Rejected(ErrorKind.KEY_NOT_FOUND, "key-set fetch rate limit reached")
            task = asyncio.ensure_future(self._fetch_and_index())
            self._inflight = task

        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            self.logger.error("JWKS fetch timed out", timeout=self.fetch_timeout)
            return Rejected(ErrorKind.KEY_FETCH_FAILED, "key-set fetch timed out")

    async def _fetch_and_index(self) -> Optional[Rejected]:
        self.fetch_count += 1
        timer = self.metrics.time_operation("jwks_fetch_duration_seconds") if self.metrics else nullcontext()
        try:
            with timer:
                # The shared fetch carries its own deadline; the in-flight slot never sticks.
                payload = await asyncio.wait_for(self.source.fetch(), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            self.logger.error("JWKS fetch abandoned", timeout=self.fetch_timeout)
            self._record_fetch("timeout")
            return Rejected(ErrorKind.KEY_FETCH_FAILED, "key-set fetch timed out")
        except (KeySetFetchError, httpx.HTTPError) as exc:
            self.logger.error("Failed to fetch JWKS", error=str(exc))
            self._record_fetch("error")
            return Rejected(ErrorKind.KEY_FETCH_FAILED, str(exc))

        keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(keys, list):
            self.logger.error("JWKS response missing 'keys' array")
            self._record_fetch("error")
            return Rejected(ErrorKind.KEY_FETCH_FAILED, "JWKS response missing 'keys' array")

        fetched_at = self._clock()
        entries: Dict[str, KeyCacheEntry] = {}
        for jwk_data in keys:
            try:
                key = load_signing_key(jwk_data)
            except (JWKError, ValueError, TypeError) as exc:
                self.logger.warning("Skipping unusable JWKS entry", error=str(exc))
                continue
            entries[key.kid] = KeyCacheEntry(key=key, fetched_at=fetched_at)

        self._entries = entries
        self._record_fetch("ok")
        self.logger.info(
            "JWKS refreshed successfully",
            keys_count=len(entries),
            fetches_remaining=self._limiter.remaining(),
        )
        return None

    def _record_fetch(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("jwks_fetch_total", status=status)

    async def warmup(self) -> None:
        """Eagerly load the key set so the first request does not pay the cost."""
        failure = await self.refresh()
        if failure is not None:
            self.logger.warning("JWKS warmup failed", reason=failure.kind.value)

    async def check_health(self) -> str:
        """Return 'ok' if fresh keys are cached or a refresh succeeds, otherwise 'error'."""
        if any(self._is_fresh(entry) for entry in self._entries.values()):
            return "ok"
        failure = await self.refresh()
        return "ok" if failure is None else "error"

    def cached_kids(self):
        return sorted(self._entries)

    def clear(self) -> None:
        """Drop every cached key."""
        self._entries = {}
        self.logger.info("JWKS cache cleared")

    async def close(self) -> None:
        close = getattr(self.source, "close", None)
        if close is not None:
            await close()
