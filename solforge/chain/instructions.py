"""Instruction builders for payouts and the bounty escrow program.

This module is the only place that knows the binary layout of bounty
program instructions. Program instructions follow the Anchor convention:
an 8-byte discriminator, ``sha256("global:<name>")[:8]``, followed by the
Borsh-encoded arguments. The bounty account is the program-derived address
seeded with ``[b"bounty", issue_hash, creator]``.
"""

from __future__ import annotations

import hashlib
import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import TransferParams, transfer
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

BOUNTY_SEED = b"bounty"
# PDA seeds are limited to 32 bytes, so the hex digest is truncated.
ISSUE_HASH_LENGTH = 32
_U64_MAX = 2**64 - 1


def _discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def _borsh_string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return struct.pack("<I", len(encoded)) + encoded


def _borsh_u64(value: int) -> bytes:
    if not 0 <= value <= _U64_MAX:
        msg = f"amount {value} does not fit in u64"
        raise ValueError(msg)
    return struct.pack("<Q", value)


def issue_hash(issue_url: str) -> str:
    """Return the seed string that identifies an issue on chain."""
    normalised = issue_url.strip().rstrip("/").lower()
    return hashlib.sha256(normalised.encode("utf-8")).hexdigest()[:ISSUE_HASH_LENGTH]


def find_bounty_address(
    program_id: Pubkey, issue_hash_value: str, creator: Pubkey
) -> tuple[Pubkey, int]:
    """Derive the bounty escrow account and its bump seed."""
    return Pubkey.find_program_address(
        [BOUNTY_SEED, issue_hash_value.encode("utf-8"), bytes(creator)],
        program_id,
    )


def sol_transfer(source: Pubkey, recipient: Pubkey, lamports: int) -> Instruction:
    """Build a System Program transfer of *lamports*."""
    return transfer(
        TransferParams(from_pubkey=source, to_pubkey=recipient, lamports=lamports)
    )


def token_transfer(
    owner: Pubkey,
    recipient: Pubkey,
    mint: Pubkey,
    amount: int,
    decimals: int,
) -> list[Instruction]:
    """Build instructions moving SPL tokens between associated accounts.

    The recipient's associated token account is created idempotently first,
    paid for by *owner*.
    """
    source = get_associated_token_address(owner, mint)
    destination = get_associated_token_address(recipient, mint)
    return [
        create_idempotent_associated_token_account(owner, recipient, mint),
        transfer_checked(
            TransferCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                source=source,
                mint=mint,
                dest=destination,
                owner=owner,
                amount=amount,
                decimals=decimals,
            )
        ),
    ]


def create_bounty(
    program_id: Pubkey, creator: Pubkey, issue_hash_value: str, amount: int
) -> Instruction:
    """Build ``create_bounty(issue_hash, amount)`` funding a SOL escrow."""
    bounty, _ = find_bounty_address(program_id, issue_hash_value, creator)
    data = (
        _discriminator("create_bounty")
        + _borsh_string(issue_hash_value)
        + _borsh_u64(amount)
    )
    accounts = [
        AccountMeta(pubkey=creator, is_signer=True, is_writable=True),
        AccountMeta(pubkey=bounty, is_signer=False, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def create_token_bounty(
    program_id: Pubkey,
    creator: Pubkey,
    issue_hash_value: str,
    amount: int,
    mint: Pubkey,
) -> Instruction:
    """Build ``create_token_bounty(issue_hash, amount)`` for an SPL escrow."""
    bounty, _ = find_bounty_address(program_id, issue_hash_value, creator)
    data = (
        _discriminator("create_token_bounty")
        + _borsh_string(issue_hash_value)
        + _borsh_u64(amount)
    )
    accounts = [
        AccountMeta(pubkey=creator, is_signer=True, is_writable=True),
        AccountMeta(pubkey=bounty, is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(
            pubkey=get_associated_token_address(creator, mint),
            is_signer=False,
            is_writable=True,
        ),
        AccountMeta(
            pubkey=get_associated_token_address(bounty, mint),
            is_signer=False,
            is_writable=True,
        ),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def claim_bounty(
    program_id: Pubkey, creator: Pubkey, claimer: Pubkey, issue_hash_value: str
) -> Instruction:
    """Build ``claim_bounty(issue_hash)`` releasing a SOL escrow."""
    bounty, _ = find_bounty_address(program_id, issue_hash_value, creator)
    data = _discriminator("claim_bounty") + _borsh_string(issue_hash_value)
    accounts = [
        AccountMeta(pubkey=bounty, is_signer=False, is_writable=True),
        AccountMeta(pubkey=creator, is_signer=False, is_writable=True),
        AccountMeta(pubkey=claimer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def claim_token_bounty(
    program_id: Pubkey,
    creator: Pubkey,
    claimer: Pubkey,
    issue_hash_value: str,
    mint: Pubkey,
) -> Instruction:
    """Build ``claim_token_bounty(issue_hash)`` releasing an SPL escrow."""
    bounty, _ = find_bounty_address(program_id, issue_hash_value, creator)
    data = _discriminator("claim_token_bounty") + _borsh_string(issue_hash_value)
    accounts = [
        AccountMeta(pubkey=bounty, is_signer=False, is_writable=True),
        AccountMeta(pubkey=creator, is_signer=False, is_writable=False),
        AccountMeta(
            pubkey=get_associated_token_address(creator, mint),
            is_signer=False,
            is_writable=True,
        ),
        AccountMeta(pubkey=claimer, is_signer=True, is_writable=True),
        AccountMeta(
            pubkey=get_associated_token_address(claimer, mint),
            is_signer=False,
            is_writable=True,
        ),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)
