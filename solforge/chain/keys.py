"""Key and address parsing."""

from __future__ import annotations

import json

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .errors import ChainConfigError, InvalidAddressError

_KEYPAIR_BYTES = 64


def _secret_bytes(text: str) -> bytes:
    if text.startswith("["):
        raw = json.loads(text)
        if not isinstance(raw, list):
            raise TypeError("keypair JSON must be an array")
        return bytes(raw)
    return base58.b58decode(text)


def load_keypair(secret: str) -> Keypair:
    """Decode the payout authority keypair.

    Accepts either the JSON byte array written by ``solana-keygen`` or a
    base58-encoded 64-byte secret key.

    Raises
    ------
    ChainConfigError
        If the value is neither form. The secret is not echoed.

    """
    try:
        raw = _secret_bytes(secret.strip())
        if len(raw) != _KEYPAIR_BYTES:
            raise ChainConfigError.invalid_payout_key()
        return Keypair.from_bytes(raw)
    except (ValueError, TypeError) as exc:
        raise ChainConfigError.invalid_payout_key() from exc


def parse_pubkey(value: str) -> Pubkey:
    """Parse a base58 public key, raising :class:`InvalidAddressError`."""
    try:
        return Pubkey.from_string(value.strip())
    except ValueError as exc:
        raise InvalidAddressError(value) from exc
