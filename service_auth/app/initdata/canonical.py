"""
Canonical check-string construction for signed initData payloads.
"""

from typing import Iterable, List, Mapping, Tuple, Union
from urllib.parse import parse_qsl

SIGNATURE_FIELD = "hash"

Pairs = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


class MalformedCredentialError(ValueError):
    """The credential string could not be parsed into unique key/value pairs."""


def parse_credential(raw: str) -> List[Tuple[str, str]]:
    """Parse a URL-encoded credential into ordered ``(key, value)`` pairs.

    Keys must be unique; a repeated key makes the signed form ambiguous.
    """
    if not raw:
        raise MalformedCredentialError("empty credential")

    try:
        pairs = parse_qsl(raw, keep_blank_values=True, strict_parsing=True)
    except ValueError as exc:
        raise MalformedCredentialError("invalid query syntax") from exc

    seen = set()
    for key, _ in pairs:
        if key in seen:
            raise MalformedCredentialError("duplicate field")
        seen.add(key)
    return pairs


def build_check_string(pairs: Pairs, signature_field: str = SIGNATURE_FIELD) -> str:
    """Return the exact string the host application signed.

    The signature field is dropped, the remaining keys are sorted by code
    point (same order as byte-wise UTF-8) and emitted as ``key=value`` lines
    joined by ``\\n`` with no trailing separator.
    """
    items = pairs.items() if isinstance(pairs, Mapping) else pairs
    remaining = [(key, value) for key, value in items if key != signature_field]
    remaining.sort(key=lambda item: item[0])
    return "\n".join(f"{key}={value}" for key, value in remaining)
