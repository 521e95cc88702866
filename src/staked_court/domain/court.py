from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from staked_court.types import Period


@dataclass(slots=True)
class Court:
    court_id: int
    parent: int
    hidden_votes: bool
    min_stake: int
    alpha: int
    fee_for_juror: int
    jurors_for_court_jump: int
    times_per_period: tuple[int, int, int, int]
    supported_dispute_kits: set[int] = field(default_factory=set)
    children: set[int] = field(default_factory=set)

    def time_for(self, period: Period) -> int:
        return self.times_per_period[int(period)]

    def supports(self, dispute_kit_id: int) -> bool:
        return dispute_kit_id in self.supported_dispute_kits

    def as_dict(self) -> dict[str, Any]:
        return {
            "court_id": self.court_id,
            "parent": self.parent,
            "hidden_votes": self.hidden_votes,
            "min_stake": self.min_stake,
            "alpha": self.alpha,
            "fee_for_juror": self.fee_for_juror,
            "jurors_for_court_jump": self.jurors_for_court_jump,
            "times_per_period": list(self.times_per_period),
            "supported_dispute_kits": sorted(self.supported_dispute_kits),
            "children": sorted(self.children),
        }


@dataclass(slots=True)
class Juror:
    account: str
    court_ids: list[int] = field(default_factory=list)
    staked_tokens: dict[int, int] = field(default_factory=dict)
    locked_tokens: dict[int, int] = field(default_factory=dict)

    def staked(self, court_id: int) -> int:
        return self.staked_tokens.get(court_id, 0)

    def locked(self, court_id: int) -> int:
        return self.locked_tokens.get(court_id, 0)

    def as_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "court_ids": list(self.court_ids),
            "balances": {
                str(court_id): {
                    "staked": self.staked(court_id),
                    "locked": self.locked(court_id),
                }
                for court_id in sorted(set(self.staked_tokens) | set(self.locked_tokens))
            },
        }
