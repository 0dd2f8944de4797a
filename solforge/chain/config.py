"""Configuration for the Solana RPC connection and payout authority.

Usage
-----
Load from environment variables:

>>> import os
>>> os.environ["SOLFORGE_SOLANA_CLUSTER"] = "devnet"
>>> config = SolanaConfig.from_env()
>>> config.rpc_url
'https://api.devnet.solana.com'

"""

from __future__ import annotations

import dataclasses as dc

from solforge.common.amounts import SOL_DECIMALS, to_base_units
from solforge.common.env import (
    parse_decimal,
    parse_positive_float,
    read_str,
)

from .errors import ChainConfigError

CLUSTER_RPC_URLS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
}
DEFAULT_PROGRAM_ID = "9p1X1hkMwYRaVfknfQGEdqvph9VQmKjkeRhzKCaz3PeQ"
DEFAULT_MAX_FEE_SOL = "0.001"


def _fee_ceiling_lamports(raw_sol: str) -> int:
    value = parse_decimal("SOLFORGE_MAX_TRANSACTION_FEE", raw_sol)
    if value == 0:
        return 0
    return to_base_units(value, SOL_DECIMALS)


@dc.dataclass(frozen=True, slots=True)
class SolanaConfig:
    """Settings for talking to a Solana cluster.

    Attributes
    ----------
    cluster
        One of ``devnet``, ``testnet`` or ``mainnet-beta``.
    rpc_url
        JSON-RPC endpoint; derived from ``cluster`` unless overridden.
    program_id
        Address of the bounty escrow program.
    payout_key
        Secret key of the payout authority, base58 or a JSON byte array.
        Never included in ``repr``.
    max_fee_lamports
        Ceiling on the network fee of a single payout transaction.
    rpc_timeout_s
        Timeout applied to every individual RPC call.
    poll_interval_s
        Delay between signature status polls while awaiting confirmation.

    """

    cluster: str = "devnet"
    rpc_url: str = CLUSTER_RPC_URLS["devnet"]
    program_id: str = DEFAULT_PROGRAM_ID
    payout_key: str | None = dc.field(default=None, repr=False)
    max_fee_lamports: int = 1_000_000
    rpc_timeout_s: float = 15.0
    poll_interval_s: float = 1.0

    @classmethod
    def from_env(cls) -> SolanaConfig:
        """Create configuration from ``SOLFORGE_*`` environment variables.

        Raises
        ------
        ChainConfigError
            If ``SOLFORGE_SOLANA_CLUSTER`` names an unknown cluster and no
            RPC URL override is given.
        ValueError
            If a numeric variable cannot be parsed.

        """
        cluster = read_str("SOLFORGE_SOLANA_CLUSTER", "devnet") or "devnet"
        rpc_url = read_str("SOLFORGE_SOLANA_RPC_URL")
        if rpc_url is None:
            if cluster not in CLUSTER_RPC_URLS:
                raise ChainConfigError.unknown_cluster(cluster)
            rpc_url = CLUSTER_RPC_URLS[cluster]
        return cls(
            cluster=cluster,
            rpc_url=rpc_url,
            program_id=read_str("SOLFORGE_PROGRAM_ID", DEFAULT_PROGRAM_ID)
            or DEFAULT_PROGRAM_ID,
            payout_key=read_str("SOLFORGE_PAYOUT_KEY"),
            max_fee_lamports=_fee_ceiling_lamports(DEFAULT_MAX_FEE_SOL),
            rpc_timeout_s=parse_positive_float("SOLFORGE_RPC_TIMEOUT_S", 15.0),
            poll_interval_s=parse_positive_float("SOLFORGE_POLL_INTERVAL_S", 1.0),
        )
