"""Ledger client interface and its solana-py implementation.

The payment executor only talks to the chain through :class:`LedgerClient`.
Each step of a payout is a separate call so the executor can record
progress between them: build (fresh blockhash and fee quote), simulate,
submit, confirm. ``signature_status`` and ``block_height`` let a retry tell
whether an earlier submission landed, may still land, or expired.
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import enum
import typing as typ

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.message import Message
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from solforge.logging import get_logger, log_debug

from . import instructions
from .errors import (
    ConfirmationTimeoutError,
    RpcUnavailableError,
    SimulationFailedError,
    SubmissionFailedError,
)
from .keys import parse_pubkey

if typ.TYPE_CHECKING:
    from solders.keypair import Keypair

    from .config import SolanaConfig

logger = get_logger(__name__)

_RPC_ERRORS = (SolanaRpcException, RPCException, httpx.HTTPError)
_LANDED = frozenset(
    {TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized}
)


@dc.dataclass(frozen=True, slots=True)
class TransferRequest:
    """Amount and destination of a payout in base units."""

    recipient: str
    amount: int
    decimals: int
    mint: str | None = None


@dc.dataclass(frozen=True, slots=True)
class PreparedTransfer:
    """A signed, not yet submitted transaction.

    The signature is fixed at signing time, so it can be recorded before
    the transaction is broadcast.
    Once the chain passes ``last_valid_block_height`` the transaction can
    no longer be processed.
    """

    signature: str
    fee_lamports: int
    blockhash: str
    last_valid_block_height: int
    payload: bytes = dc.field(repr=False)


class SignatureState(enum.StrEnum):
    """Chain view of a transaction signature."""

    CONFIRMED = "confirmed"
    FAILED = "failed"
    PENDING = "pending"
    UNKNOWN = "unknown"


@dc.dataclass(frozen=True, slots=True)
class SignatureStatus:
    """State of a signature plus the on-chain error, if any."""

    state: SignatureState
    error: str | None = None


class LedgerClient(typ.Protocol):
    """Operations the payment executor needs from a ledger."""

    async def build_transfer(self, request: TransferRequest) -> PreparedTransfer:
        """Build and sign a transfer with a fresh blockhash."""
        ...

    async def simulate(self, prepared: PreparedTransfer) -> None:
        """Raise :class:`SimulationFailedError` if the transfer would fail."""
        ...

    async def submit(self, prepared: PreparedTransfer) -> str:
        """Broadcast the transfer and return its signature."""
        ...

    async def confirm(self, signature: str, *, timeout_s: float) -> None:
        """Wait until *signature* is confirmed or raise."""
        ...

    async def signature_status(self, signature: str) -> SignatureStatus:
        """Return the current chain status of *signature*."""
        ...

    async def block_height(self) -> int:
        """Return the current block height at ``confirmed`` commitment."""
        ...


class SolanaLedgerClient:
    """:class:`LedgerClient` backed by a Solana JSON-RPC node.

    Transfers are paid and signed by the payout authority keypair. SOL
    rewards use a System Program transfer; token rewards move between the
    authority's and the recipient's associated token accounts.
    """

    def __init__(
        self,
        config: SolanaConfig,
        payer: Keypair,
        *,
        rpc: AsyncClient | None = None,
    ) -> None:
        """Bind the client to a cluster and a payout authority."""
        self._config = config
        self._payer = payer
        self._owns_rpc = rpc is None
        self._rpc = rpc or AsyncClient(config.rpc_url, commitment=Confirmed)

    def __repr__(self) -> str:
        """Describe the client without exposing key material."""
        return f"SolanaLedgerClient(rpc_url={self._config.rpc_url!r})"

    async def aclose(self) -> None:
        """Close the RPC connection when this client created it."""
        if self._owns_rpc:
            await self._rpc.close()

    async def _call[T](self, name: str, awaitable: typ.Awaitable[T]) -> T:
        try:
            async with asyncio.timeout(self._config.rpc_timeout_s):
                return await awaitable
        except TimeoutError as exc:
            raise RpcUnavailableError.for_call(name, "timed out") from exc
        except _RPC_ERRORS as exc:
            raise RpcUnavailableError.for_call(name, str(exc)) from exc

    def _instructions(self, request: TransferRequest) -> list[typ.Any]:
        payer = self._payer.pubkey()
        recipient = parse_pubkey(request.recipient)
        if request.mint is None:
            return [instructions.sol_transfer(payer, recipient, request.amount)]
        return instructions.token_transfer(
            payer,
            recipient,
            parse_pubkey(request.mint),
            request.amount,
            request.decimals,
        )

    async def build_transfer(self, request: TransferRequest) -> PreparedTransfer:
        """Build, fee-quote and sign a payout transfer."""
        latest = await self._call(
            "getLatestBlockhash", self._rpc.get_latest_blockhash(Confirmed)
        )
        blockhash = latest.value.blockhash
        message = Message.new_with_blockhash(
            self._instructions(request), self._payer.pubkey(), blockhash
        )
        fee = await self._call(
            "getFeeForMessage", self._rpc.get_fee_for_message(message)
        )
        transaction = Transaction([self._payer], message, blockhash)
        return PreparedTransfer(
            signature=str(transaction.signatures[0]),
            fee_lamports=fee.value or 0,
            blockhash=str(blockhash),
            last_valid_block_height=latest.value.last_valid_block_height,
            payload=bytes(transaction),
        )

    async def simulate(self, prepared: PreparedTransfer) -> None:
        """Run preflight simulation; raise on any program error."""
        transaction = Transaction.from_bytes(prepared.payload)
        result = await self._call(
            "simulateTransaction",
            self._rpc.simulate_transaction(transaction, sig_verify=True),
        )
        if result.value.err is not None:
            logs = tuple(result.value.logs or ())
            raise SimulationFailedError.from_error(result.value.err, logs)

    async def submit(self, prepared: PreparedTransfer) -> str:
        """Broadcast the signed transaction without a second preflight."""
        try:
            async with asyncio.timeout(self._config.rpc_timeout_s):
                response = await self._rpc.send_raw_transaction(
                    prepared.payload,
                    opts=TxOpts(skip_preflight=True, preflight_commitment=Confirmed),
                )
        except TimeoutError as exc:
            raise SubmissionFailedError.rejected("sendTransaction timed out") from exc
        except _RPC_ERRORS as exc:
            raise SubmissionFailedError.rejected(str(exc)) from exc
        return str(response.value)

    async def signature_status(self, signature: str) -> SignatureStatus:
        """Look up *signature*, searching transaction history."""
        response = await self._call(
            "getSignatureStatuses",
            self._rpc.get_signature_statuses(
                [Signature.from_string(signature)], search_transaction_history=True
            ),
        )
        status = response.value[0] if response.value else None
        if status is None:
            return SignatureStatus(SignatureState.UNKNOWN)
        if status.err is not None:
            return SignatureStatus(SignatureState.FAILED, str(status.err))
        if status.confirmation_status in _LANDED:
            return SignatureStatus(SignatureState.CONFIRMED)
        return SignatureStatus(SignatureState.PENDING)

    async def block_height(self) -> int:
        """Return the cluster block height used for blockhash expiry."""
        response = await self._call(
            "getBlockHeight", self._rpc.get_block_height(Confirmed)
        )
        return response.value

    async def confirm(self, signature: str, *, timeout_s: float) -> None:
        """Poll until *signature* reaches ``confirmed`` commitment.

        Raises
        ------
        ConfirmationTimeoutError
            If the signature is not confirmed within *timeout_s*.
        SubmissionFailedError
            If the transaction landed with an error.

        """
        try:
            async with asyncio.timeout(timeout_s):
                while True:
                    status = await self.signature_status(signature)
                    if status.state is SignatureState.CONFIRMED:
                        return
                    if status.state is SignatureState.FAILED:
                        raise SubmissionFailedError.on_chain(signature, status.error)
                    log_debug(logger, "Awaiting confirmation of %s", signature)
                    await asyncio.sleep(self._config.poll_interval_s)
        except TimeoutError as exc:
            raise ConfirmationTimeoutError(signature, timeout_s) from exc
