#!/usr/bin/env python3
"""
Probe the identity backend's JWKS endpoint.

Prints every published key with its kid, type, use and algorithm, and
whether the signing-key cache would accept it. Useful when bearer tokens
fail with KEY_NOT_FOUND: a 404 here usually means the backend still signs
with a shared secret and publishes no key set.
"""

import argparse
import asyncio
import json
import os
import sys
from typing import Any, Dict, Optional

from jose.exceptions import JWKError

from ascent_common.config import BaseConfig

from .client import HttpKeySetSource, KeySetFetchError, KeySetSource, load_signing_key


async def probe(jwks_url: str, *, timeout: float = 5.0, source: Optional[KeySetSource] = None) -> Dict[str, Any]:
    """Fetch the key set and summarise each key."""
    owned = source is None
    source = source or HttpKeySetSource(jwks_url, http_timeout=timeout)
    try:
        payload = await source.fetch()
    finally:
        if owned:
            await source.close()

    keys = []
    for jwk_data in payload.get("keys", []):
        entry = {
            field: jwk_data.get(field) if isinstance(jwk_data, dict) else None
            for field in ("kid", "kty", "use", "alg")
        }
        try:
            signing_key = load_signing_key(jwk_data)
        except (JWKError, ValueError, TypeError) as exc:
            entry.update(accepted=False, reason=str(exc))
        else:
            entry.update(accepted=True, algorithm=signing_key.algorithm)
        keys.append(entry)

    return {
        "jwks_url": jwks_url,
        "keys_count": len(keys),
        "accepted_count": sum(1 for key in keys if key["accepted"]),
        "keys": keys,
    }


def _default_jwks_url() -> Optional[str]:
    return BaseConfig().jwks_url


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Probe the identity backend JWKS endpoint.")
    parser.add_argument("--jwks-url", default=None, help="Key-set URL (defaults to <SUPABASE_URL>/.well-known/jwks.json)")
    parser.add_argument("--timeout", type=float, default=float(os.getenv("ASCENT_JWKS_FETCH_TIMEOUT", 5.0)), help="HTTP timeout in seconds")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    jwks_url = args.jwks_url or _default_jwks_url()
    if not jwks_url:
        print("[probe-jwks] no JWKS URL: pass --jwks-url or set SUPABASE_URL", file=sys.stderr)
        return 2

    try:
        summary = asyncio.run(probe(jwks_url, timeout=args.timeout))
    except KeyboardInterrupt:
        return 130
    except KeySetFetchError as exc:
        print(f"[probe-jwks] failed: {exc.message} {json.dumps(exc.details)}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))
    return 0 if summary["accepted_count"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
