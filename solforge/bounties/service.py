"""Bounty creation, claim submission and cancellation."""

from __future__ import annotations

import base64
import dataclasses as dc
import datetime as dt
import decimal
import typing as typ

from solforge.chain import instructions
from solforge.chain.config import DEFAULT_PROGRAM_ID
from solforge.chain.errors import InvalidAddressError
from solforge.chain.keys import parse_pubkey
from solforge.common.amounts import SOL_DECIMALS, InvalidAmountError, to_base_units
from solforge.common.time import utcnow
from solforge.common.urls import (
    InvalidGitHubUrlError,
    normalise_full_name,
    parse_issue_url,
    parse_pull_request_url,
    parse_repository_url,
)
from solforge.logging import get_logger, log_info

from .config import BountyConfig
from .errors import BountyNotFoundError, BountyValidationError, IllegalTransitionError
from .models import (
    Bounty,
    BountyState,
    ClaimEvent,
    Currency,
    NewBounty,
    Reward,
    TransitionFields,
)

if typ.TYPE_CHECKING:
    from solders.instruction import Instruction

    from .state_machine import ClaimStateMachine
    from .store import BountyStore

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class CreateBountyRequest:
    """Creator-supplied bounty fields before validation."""

    title: str
    description: str
    display_amount: decimal.Decimal | str | int
    currency: Currency
    issue_url: str
    repository_url: str
    creator_id: str
    creator_wallet: str
    token_mint: str | None = None
    token_decimals: int | None = None
    deadline: dt.datetime | None = None


@dc.dataclass(frozen=True, slots=True)
class SubmissionRequest:
    """Claimant-supplied submission fields."""

    pr_url: str
    claimant_login: str
    claimant_wallet: str


@dc.dataclass(frozen=True, slots=True)
class FundingInstruction:
    """Unsigned escrow-funding instruction for the creator's wallet."""

    program_id: str
    bounty_address: str
    issue_hash: str
    accounts: tuple[dict[str, typ.Any], ...]
    data: str

    @classmethod
    def from_instruction(
        cls, instruction: Instruction, *, bounty_address: str, issue_hash: str
    ) -> FundingInstruction:
        """Serialise a solders instruction for JSON transport."""
        return cls(
            program_id=str(instruction.program_id),
            bounty_address=bounty_address,
            issue_hash=issue_hash,
            accounts=tuple(
                {
                    "pubkey": str(meta.pubkey),
                    "is_signer": meta.is_signer,
                    "is_writable": meta.is_writable,
                }
                for meta in instruction.accounts
            ),
            data=base64.b64encode(bytes(instruction.data)).decode("ascii"),
        )


@dc.dataclass(frozen=True, slots=True)
class CreatedBounty:
    """A newly stored bounty with the instruction that funds it."""

    bounty: Bounty
    funding: FundingInstruction


def _require_text(value: str, field: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise BountyValidationError("must be a non-empty string", field=field)
    return text


def _wallet(value: str, field: str) -> str:
    try:
        return str(parse_pubkey(_require_text(value, field)))
    except InvalidAddressError as exc:
        raise BountyValidationError("is not a valid Solana address", field=field) from exc


class BountyService:
    """Application service for the bounty lifecycle outside webhooks."""

    def __init__(
        self,
        store: BountyStore,
        state_machine: ClaimStateMachine,
        *,
        program_id: str = DEFAULT_PROGRAM_ID,
        config: BountyConfig | None = None,
    ) -> None:
        """Bind the service to storage and the escrow program."""
        self._store = store
        self._state_machine = state_machine
        self._program_id = program_id
        self._config = config or BountyConfig()

    async def get(self, bounty_id: str) -> Bounty:
        """Return a bounty or raise :class:`BountyNotFoundError`."""
        bounty = await self._store.get(bounty_id)
        if bounty is None:
            raise BountyNotFoundError(bounty_id)
        return bounty

    def _reward(self, request: CreateBountyRequest) -> Reward:
        if request.currency is Currency.SOL:
            if request.token_mint is not None:
                raise BountyValidationError(
                    "must be omitted for SOL rewards", field="token_mint"
                )
            decimals, mint = SOL_DECIMALS, None
        else:
            if request.token_mint is None or request.token_decimals is None:
                raise BountyValidationError(
                    "token rewards need token_mint and token_decimals",
                    field="token_mint",
                )
            decimals = request.token_decimals
            mint = _wallet(request.token_mint, "token_mint")
        try:
            amount = to_base_units(request.display_amount, decimals)
        except InvalidAmountError as exc:
            raise BountyValidationError(str(exc), field="display_amount") from exc
        return Reward(amount=amount, currency=request.currency, decimals=decimals, mint=mint)

    def _deadline(self, requested: dt.datetime | None) -> dt.datetime:
        now = utcnow()
        if requested is None:
            return now + dt.timedelta(days=self._config.default_deadline_days)
        if requested.tzinfo is None:
            raise BountyValidationError("must include a timezone", field="deadline")
        if requested <= now:
            raise BountyValidationError("must be in the future", field="deadline")
        return requested

    def _funding(self, bounty: Bounty) -> FundingInstruction:
        program_id = parse_pubkey(self._program_id)
        creator = parse_pubkey(bounty.creator_wallet)
        seed = instructions.issue_hash(bounty.issue_url)
        address, _ = instructions.find_bounty_address(program_id, seed, creator)
        if bounty.reward.mint is None:
            instruction = instructions.create_bounty(
                program_id, creator, seed, bounty.reward.amount
            )
        else:
            instruction = instructions.create_token_bounty(
                program_id,
                creator,
                seed,
                bounty.reward.amount,
                parse_pubkey(bounty.reward.mint),
            )
        return FundingInstruction.from_instruction(
            instruction, bounty_address=str(address), issue_hash=seed
        )

    async def create_bounty(self, request: CreateBountyRequest) -> CreatedBounty:
        """Validate and persist a new ``open`` bounty.

        The decimal amount is converted to integer base units here, once.

        Raises
        ------
        BountyValidationError
            If any field is missing or malformed.

        """
        title = _require_text(request.title, "title")
        creator_id = _require_text(request.creator_id, "creator_id")
        creator_wallet = _wallet(request.creator_wallet, "creator_wallet")
        try:
            repository = parse_repository_url(request.repository_url)
            issue = parse_issue_url(request.issue_url)
        except InvalidGitHubUrlError as exc:
            raise BountyValidationError(str(exc), field="issue_url") from exc
        if issue.repository != repository:
            raise BountyValidationError(
                "issue does not belong to repository_url", field="issue_url"
            )

        bounty = await self._store.create(
            NewBounty(
                title=title,
                description=request.description or "",
                reward=self._reward(request),
                repository_full_name=repository.full_name,
                repository_url=request.repository_url.strip(),
                issue_url=request.issue_url.strip(),
                issue_number=issue.number,
                creator_id=creator_id,
                creator_wallet=creator_wallet,
                deadline=self._deadline(request.deadline),
            )
        )
        log_info(
            logger,
            "Created bounty %s for %s#%d (%d base units %s)",
            bounty.id,
            bounty.repository_full_name,
            bounty.issue_number,
            bounty.reward.amount,
            bounty.reward.currency,
        )
        return CreatedBounty(bounty=bounty, funding=self._funding(bounty))

    async def submit_claim(
        self, bounty_id: str, submission: SubmissionRequest
    ) -> Bounty:
        """Attach a pull request and claimant to an ``open`` bounty.

        Raises
        ------
        BountyNotFoundError
            If the bounty does not exist.
        BountyValidationError
            If the PR is not in the bounty's repository, the wallet is not a
            valid address, or the deadline has passed.
        IllegalTransitionError
            If the bounty is not ``open``.

        """
        bounty = await self.get(bounty_id)
        login = _require_text(submission.claimant_login, "claimant_login")
        wallet = _wallet(submission.claimant_wallet, "claimant_wallet")
        try:
            pr = parse_pull_request_url(submission.pr_url)
        except InvalidGitHubUrlError as exc:
            raise BountyValidationError(str(exc), field="pr_url") from exc
        if pr.repository.full_name != normalise_full_name(bounty.repository_full_name):
            raise BountyValidationError(
                "pull request is not in the bounty's repository", field="pr_url"
            )
        if bounty.deadline is not None and utcnow() > bounty.deadline:
            raise BountyValidationError("bounty deadline has passed", field="deadline")

        updated = await self._state_machine.apply(
            bounty,
            ClaimEvent.SUBMIT,
            TransitionFields(
                pr_url=submission.pr_url.strip(),
                pr_number=pr.number,
                claimant_login=login,
                claimant_wallet=wallet,
            ),
        )
        log_info(logger, "Bounty %s submitted by %s via %s", bounty_id, login, updated.pr_url)
        return updated

    async def cancel(self, bounty_id: str) -> Bounty:
        """Cancel an ``open`` or ``submitted`` bounty."""
        bounty = await self.get(bounty_id)
        updated = await self._state_machine.apply(bounty, ClaimEvent.CANCEL)
        log_info(logger, "Bounty %s cancelled from %s", bounty_id, bounty.state)
        return updated

    async def cancel_open_for_issue(
        self, repository_full_name: str, issue_number: int
    ) -> list[Bounty]:
        """Cancel ``open`` bounties on an issue closed without a submission."""
        cancelled: list[Bounty] = []
        for bounty in await self._store.find_by_issue(
            normalise_full_name(repository_full_name), issue_number
        ):
            if bounty.state is not BountyState.OPEN:
                continue
            try:
                cancelled.append(
                    await self._state_machine.apply(bounty, ClaimEvent.CANCEL)
                )
            except IllegalTransitionError as exc:
                log_info(logger, "Skipped cancelling bounty %s: %s", bounty.id, exc)
        return cancelled
