"""
Token validation package.

Validates bearer tokens issued by the upstream identity backend:

- Resolves the signing key by ``kid`` through the shared JWKS cache.
- Verifies the signature with the algorithm declared by that key.
- Checks expiry, not-before, and (when configured) audience and issuer.
- Produces a Principal carrying the subject as the user id.
"""

from .token_validator import TokenVerifier

__all__ = ["TokenVerifier"]
