"""
Address and content identifier helpers.

Identities are 0x-prefixed 40-hex-digit strings compared case-insensitively.
Content identifiers are 32-byte SHA3-256 digests of a human-readable name,
used wherever two independently deployed contracts must agree on an id
without sharing an enumeration (capabilities, metadata keys).
"""

from __future__ import annotations

import hashlib
import re

ZERO_ADDRESS = "0x" + "0" * 40
ZERO_ID = "0x" + "0" * 64

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(address: str) -> str:
    """Normalize address to lowercase."""
    return address.lower()


def is_valid_address(address: str) -> bool:
    """Check address shape (0x + 40 hex digits)."""
    return bool(address) and bool(_ADDRESS_RE.match(address))


def content_id(name: str) -> str:
    """
    Derive a stable 32-byte identifier from a name.

    Args:
        name: Human-readable name, e.g. "MINTER_ROLE"

    Returns:
        0x-prefixed 64-hex-digit digest
    """
    return "0x" + hashlib.sha3_256(name.encode("utf-8")).hexdigest()


def derive_address(seed: str) -> str:
    """Derive a deterministic address from a seed string."""
    digest = hashlib.sha3_256(seed.encode("utf-8")).digest()
    return f"0x{digest[-20:].hex()}"
