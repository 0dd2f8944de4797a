"""Stable identity of a payout."""

from __future__ import annotations

import hashlib
import typing as typ

if typ.TYPE_CHECKING:
    from solforge.bounties.models import Bounty


def payment_fingerprint(bounty: Bounty) -> str:
    """Return the SHA-256 hex digest identifying *bounty*'s payout.

    Two payouts share a fingerprint only when they move the same amount of
    the same asset between the same wallets for the same bounty.
    """
    parts = (
        str(bounty.reward.amount),
        bounty.reward.currency.value,
        bounty.reward.mint or "",
        bounty.creator_wallet,
        bounty.claimant_wallet or "",
        bounty.id,
    )
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
