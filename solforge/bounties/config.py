"""Configuration for bounty creation defaults."""

from __future__ import annotations

import dataclasses as dc

from solforge.common.env import parse_positive_int


@dc.dataclass(frozen=True, slots=True)
class BountyConfig:
    """Settings applied when bounties are created.

    Attributes
    ----------
    default_deadline_days
        Deadline applied when the creator does not supply one. Default is
        30 days after creation.

    """

    default_deadline_days: int = 30

    @classmethod
    def from_env(cls) -> BountyConfig:
        """Create configuration from ``SOLFORGE_BOUNTY_DEADLINE_DAYS``."""
        return cls(
            default_deadline_days=parse_positive_int(
                "SOLFORGE_BOUNTY_DEADLINE_DAYS", 30
            )
        )
