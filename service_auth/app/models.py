"""
Result and identity types shared by the verifiers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union


class ErrorKind(Enum):
    """Why a credential was rejected."""

    MISSING_CREDENTIAL = "missing_credential"
    MALFORMED_CREDENTIAL = "malformed_credential"
    SIGNATURE_MISMATCH = "signature_mismatch"
    EXPIRED = "expired"
    KEY_NOT_FOUND = "key_not_found"
    KEY_FETCH_FAILED = "key_fetch_failed"
    SERVER_MISCONFIGURATION = "server_misconfiguration"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]

    @property
    def public_message(self) -> str:
        """Terse client-facing message; diagnostics stay in the logs."""
        return _PUBLIC_MESSAGES[self]


_STATUS_CODES = {
    ErrorKind.MISSING_CREDENTIAL: 401,
    ErrorKind.MALFORMED_CREDENTIAL: 400,
    ErrorKind.SIGNATURE_MISMATCH: 403,
    ErrorKind.EXPIRED: 401,
    ErrorKind.KEY_NOT_FOUND: 401,
    ErrorKind.KEY_FETCH_FAILED: 500,
    ErrorKind.SERVER_MISCONFIGURATION: 500,
}

_PUBLIC_MESSAGES = {
    ErrorKind.MISSING_CREDENTIAL: "Unauthorized",
    ErrorKind.MALFORMED_CREDENTIAL: "Malformed credential",
    ErrorKind.SIGNATURE_MISMATCH: "Invalid credential",
    ErrorKind.EXPIRED: "Credential expired",
    ErrorKind.KEY_NOT_FOUND: "Unauthorized",
    ErrorKind.KEY_FETCH_FAILED: "Authentication temporarily unavailable",
    ErrorKind.SERVER_MISCONFIGURATION: "Server configuration error",
}


@dataclass(frozen=True)
class Principal:
    """Verified identity handed to downstream handlers."""

    user_id: Optional[str]
    scheme: str
    issued_at: Optional[datetime] = None
    user: Optional[Dict[str, Any]] = field(default=None, compare=False)


@dataclass(frozen=True)
class Authenticated:
    principal: Principal

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    kind: ErrorKind
    # Server-side diagnostic; never rendered to clients.
    detail: str = ""

    @property
    def ok(self) -> bool:
        return False


VerificationResult = Union[Authenticated, Rejected]


@dataclass(frozen=True)
class SigningKey:
    """Public verification key taken from the identity backend's key set."""

    kid: str
    algorithm: str
    key_type: str
    public_key_material: bytes = field(repr=False)


@dataclass(frozen=True)
class KeyCacheEntry:
    key: SigningKey
    fetched_at: float
