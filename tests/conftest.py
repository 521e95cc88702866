from __future__ import annotations

from dataclasses import dataclass

import pytest

from staked_court.collaborators.arbitrable import RecordingArbitrable
from staked_court.collaborators.clock import ManualClock
from staked_court.collaborators.rng import HashChainRNG
from staked_court.config import AppSettings
from staked_court.core import ArbitrationCore
from staked_court.dispute_kits.classic import ClassicDisputeKit
from staked_court.engine import Engine, build_engine
from staked_court.registry import StakeRegistry
from staked_court.types import GENERAL_COURT, Period


@dataclass
class CourtDriver:
    """Moves disputes through their periods the way external callers would."""

    engine: Engine
    clock: ManualClock

    @property
    def core(self) -> ArbitrationCore:
        return self.engine.core

    @property
    def kit(self) -> ClassicDisputeKit:
        return self.engine.classic_kit

    @property
    def registry(self) -> StakeRegistry:
        return self.engine.registry

    def stake(self, account: str, amount: int, court_id: int = GENERAL_COURT) -> None:
        self.engine.fund_juror(account, amount)
        self.registry.set_stake(account, court_id, amount)

    def open_dispute(
        self,
        *,
        choices: int = 2,
        min_jurors: int = 3,
        court_id: int = GENERAL_COURT,
        address: str = "arbitrable",
    ) -> tuple[int, RecordingArbitrable]:
        arbitrable = RecordingArbitrable(address=address)
        cost = self.core.arbitration_cost(court_id, min_jurors)
        self.engine.fund_account(address, cost)
        dispute_id = self.core.create_dispute(
            arbitrable, choices, value=cost, court_id=court_id, min_jurors=min_jurors
        )
        return dispute_id, arbitrable

    def elapse(self, dispute_id: int) -> None:
        dispute = self.core.get_dispute(dispute_id)
        self.clock.advance(self.registry.court(dispute.court_id).time_for(dispute.period))

    def draw_panel(self, dispute_id: int, chunk: int = 100) -> None:
        dispute = self.core.get_dispute(dispute_id)
        while len(dispute.current_round.drawn_jurors) < dispute.nb_votes:
            assert self.core.draw(dispute_id, chunk) > 0

    def start_voting(self, dispute_id: int) -> None:
        self.draw_panel(dispute_id)
        if self.core.get_dispute(dispute_id).current_round_index == 0:
            self.elapse(dispute_id)
        self.core.pass_period(dispute_id)

    def owner(self, dispute_id: int, vote_id: int) -> str:
        return self.core.get_dispute(dispute_id).current_round.drawn_jurors[vote_id].account

    def vote_slots(self, dispute_id: int, choices: dict[int, int]) -> None:
        for vote_id, choice in choices.items():
            self.kit.cast_vote(self.owner(dispute_id, vote_id), dispute_id, [vote_id], choice)

    def vote_all(self, dispute_id: int, choice: int) -> None:
        panel = self.core.get_dispute(dispute_id).current_round.drawn_jurors
        self.vote_slots(dispute_id, {vote_id: choice for vote_id in range(len(panel))})

    def to_execution(self, dispute_id: int) -> None:
        while self.core.get_dispute(dispute_id).period != Period.EXECUTION:
            self.elapse(dispute_id)
            self.core.pass_period(dispute_id)

    def settle(self, dispute_id: int, round_index: int, chunk: int = 100) -> None:
        while self.core.get_round(dispute_id, round_index).repartitions < self.core.settlement_limit(
            dispute_id, round_index
        ):
            self.core.execute(dispute_id, round_index, chunk)


def make_driver(**overrides: object) -> CourtDriver:
    clock = ManualClock()
    engine = build_engine(AppSettings(**overrides), clock=clock, rng=HashChainRNG(b"tests"))
    return CourtDriver(engine=engine, clock=clock)


@pytest.fixture
def driver() -> CourtDriver:
    return make_driver()


@pytest.fixture
def driver_factory():
    return make_driver
