"""Solana account address checks.

An address is the base58 form of a 32-byte ed25519 public key. Addresses
copied from EVM tooling sometimes arrive with a ``0x`` prefix; those get one
chance to be read as a native address before being rejected.
"""
from __future__ import annotations

from typing import Optional

import base58
from solders.pubkey import Pubkey

PUBKEY_LENGTH = 32
FOREIGN_HEX_PREFIX = "0x"


def has_foreign_hex_prefix(raw: str) -> bool:
    return isinstance(raw, str) and raw.startswith(FOREIGN_HEX_PREFIX)


def _decode_native(candidate: str) -> Optional[Pubkey]:
    if not candidate:
        return None
    try:
        decoded = base58.b58decode(candidate)
    except ValueError:
        return None
    if len(decoded) != PUBKEY_LENGTH:
        return None
    return Pubkey.from_bytes(decoded)


def normalize_address(raw: str) -> Optional[str]:
    """Return the canonical base58 address for ``raw`` or ``None``."""
    if not isinstance(raw, str):
        return None
    cleaned = raw.strip()
    if has_foreign_hex_prefix(cleaned):
        cleaned = cleaned[len(FOREIGN_HEX_PREFIX):]
    pubkey = _decode_native(cleaned)
    if pubkey is None:
        return None
    return str(pubkey)


def is_valid_address(raw: str) -> bool:
    return normalize_address(raw) is not None
