"""Unit tests for Solana key parsing and instruction builders."""

from __future__ import annotations

import hashlib
import json
import struct

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import decode_transfer
from spl.token.constants import TOKEN_PROGRAM_ID

from solforge.chain import instructions
from solforge.chain.errors import ChainConfigError, InvalidAddressError
from solforge.chain.keys import load_keypair, parse_pubkey

ISSUE_URL = "https://github.com/o/r/issues/7"


class TestKeys:
    """Tests for payout key and address parsing."""

    def test_load_keypair_from_json_array(self) -> None:
        """The solana-keygen JSON format decodes to the same keypair."""
        keypair = Keypair()
        secret = json.dumps(list(bytes(keypair)))
        assert load_keypair(secret).pubkey() == keypair.pubkey()

    def test_load_keypair_from_base58(self) -> None:
        """A base58 secret key decodes to the same keypair."""
        keypair = Keypair()
        assert load_keypair(f"  {keypair}\n").pubkey() == keypair.pubkey()

    @pytest.mark.parametrize("secret", ["[1, 2, 3]", "[1, 2", "not-a-key"])
    def test_invalid_keys_do_not_echo_secret(self, secret: str) -> None:
        """Undecodable keys raise ChainConfigError without the key material."""
        with pytest.raises(ChainConfigError) as exc_info:
            load_keypair(secret)
        assert secret not in str(exc_info.value)

    def test_parse_pubkey(self) -> None:
        """Valid addresses parse; anything else raises InvalidAddressError."""
        pubkey = Keypair().pubkey()
        assert parse_pubkey(f" {pubkey} ") == pubkey
        with pytest.raises(InvalidAddressError, match="not a valid Solana address"):
            parse_pubkey("0xdeadbeef")


class TestInstructions:
    """Tests for the escrow program layout and payout transfers."""

    def test_issue_hash_is_normalised(self) -> None:
        """Case and trailing slashes do not change the issue seed."""
        seed = instructions.issue_hash(ISSUE_URL)
        assert len(seed) == instructions.ISSUE_HASH_LENGTH
        assert seed == instructions.issue_hash(ISSUE_URL.upper() + "/")
        assert seed != instructions.issue_hash("https://github.com/o/r/issues/8")

    def test_bounty_address_is_per_creator(self) -> None:
        """The escrow PDA is deterministic and seeded by the creator."""
        program_id = Pubkey.new_unique()
        seed = instructions.issue_hash(ISSUE_URL)
        creator = Pubkey.new_unique()

        first = instructions.find_bounty_address(program_id, seed, creator)

        assert first == instructions.find_bounty_address(program_id, seed, creator)
        assert first != instructions.find_bounty_address(
            program_id, seed, Pubkey.new_unique()
        )

    def test_create_bounty_layout(self) -> None:
        """Data is discriminator, Borsh string seed and u64 amount."""
        program_id = Pubkey.new_unique()
        creator = Pubkey.new_unique()
        seed = instructions.issue_hash(ISSUE_URL)

        ix = instructions.create_bounty(program_id, creator, seed, 100_000_000)

        data = bytes(ix.data)
        assert data[:8] == hashlib.sha256(b"global:create_bounty").digest()[:8]
        assert data[8:12] == struct.pack("<I", len(seed))
        assert data[12 : 12 + len(seed)] == seed.encode()
        assert data[-8:] == struct.pack("<Q", 100_000_000)
        assert [meta.pubkey for meta in ix.accounts] == [
            creator,
            instructions.find_bounty_address(program_id, seed, creator)[0],
            SYSTEM_PROGRAM_ID,
        ]

    def test_amount_must_fit_u64(self) -> None:
        """Amounts beyond u64 are rejected before encoding."""
        with pytest.raises(ValueError, match="does not fit in u64"):
            instructions.create_bounty(
                Pubkey.new_unique(), Pubkey.new_unique(), "seed", 2**64
            )

    def test_claim_instructions_require_claimer_signature(self) -> None:
        """Claim instructions carry only the seed and are signed by the claimer."""
        program_id = Pubkey.new_unique()
        creator = Pubkey.new_unique()
        claimer = Pubkey.new_unique()
        mint = Pubkey.new_unique()
        seed = instructions.issue_hash(ISSUE_URL)

        sol_claim = instructions.claim_bounty(program_id, creator, claimer, seed)
        token_claim = instructions.claim_token_bounty(
            program_id, creator, claimer, seed, mint
        )

        assert bytes(sol_claim.data)[:8] == (
            hashlib.sha256(b"global:claim_bounty").digest()[:8]
        )
        assert len(bytes(sol_claim.data)) == 8 + 4 + len(seed)
        for ix in (sol_claim, token_claim):
            signers = [meta.pubkey for meta in ix.accounts if meta.is_signer]
            assert signers == [claimer], "only the claimer should sign"
        assert TOKEN_PROGRAM_ID in [meta.pubkey for meta in token_claim.accounts]

    def test_sol_transfer(self) -> None:
        """SOL payouts are plain System Program transfers."""
        source = Pubkey.new_unique()
        recipient = Pubkey.new_unique()

        params = decode_transfer(instructions.sol_transfer(source, recipient, 42))

        assert (params["from_pubkey"], params["to_pubkey"], params["lamports"]) == (
            source,
            recipient,
            42,
        )

    def test_token_transfer_creates_recipient_account_first(self) -> None:
        """Token payouts create the destination account idempotently."""
        ixs = instructions.token_transfer(
            Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique(), 5, 6
        )

        assert len(ixs) == 2
        assert ixs[1].program_id == TOKEN_PROGRAM_ID
