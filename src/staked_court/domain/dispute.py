from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from staked_court.types import Period, StakePath


@dataclass(slots=True)
class Round:
    court_id: int
    tokens_at_stake_per_juror: int
    total_fees_for_jurors: int
    repartitions: int = 0
    penalties: int = 0
    drawn_jurors: list[StakePath] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "court_id": self.court_id,
            "tokens_at_stake_per_juror": self.tokens_at_stake_per_juror,
            "total_fees_for_jurors": self.total_fees_for_jurors,
            "repartitions": self.repartitions,
            "penalties": self.penalties,
            "drawn_jurors": [path.account for path in self.drawn_jurors],
        }


@dataclass(slots=True)
class Dispute:
    court_id: int
    arbitrable: str
    dispute_kit_id: int
    number_of_choices: int
    last_period_change: int
    nb_votes: int
    period: Period = Period.EVIDENCE
    ruled: bool = False
    rounds: list[Round] = field(default_factory=list)

    @property
    def current_round_index(self) -> int:
        return len(self.rounds) - 1

    @property
    def current_round(self) -> Round:
        return self.rounds[-1]

    def as_dict(self) -> dict[str, Any]:
        return {
            "court_id": self.court_id,
            "arbitrable": self.arbitrable,
            "dispute_kit_id": self.dispute_kit_id,
            "number_of_choices": self.number_of_choices,
            "period": self.period.name.lower(),
            "ruled": self.ruled,
            "last_period_change": self.last_period_change,
            "nb_votes": self.nb_votes,
            "rounds": [round_.as_dict() for round_ in self.rounds],
        }
