"""Run a whole dispute from a JSON scenario against the in-memory engine.

A scenario looks like::

    {
      "seed": "demo",
      "choices": 2,
      "min_jurors": 3,
      "court": {"hidden_votes": true, "min_stake": 200},
      "jurors": [{"account": "<pubkey>", "stake": 1000}, ...],
      "votes": {"<pubkey>": 1, ...}
    }

Jurors missing from ``votes`` stay silent and are treated as inactive.
"""
from __future__ import annotations

import hashlib
from typing import Any

from staked_court.collaborators.arbitrable import RecordingArbitrable
from staked_court.collaborators.clock import ManualClock
from staked_court.collaborators.rng import HashChainRNG
from staked_court.config import AppSettings
from staked_court.dispute_kits.classic import hash_vote
from staked_court.engine import Engine, build_engine
from staked_court.errors import PreconditionError
from staked_court.observability.logging import get_logger
from staked_court.solana.pubkeys import normalize_account, normalize_juror_stakes
from staked_court.types import GENERAL_COURT, JsonDict, Period

_COURT_OVERRIDES = {
    "hidden_votes": "general_court_hidden_votes",
    "min_stake": "general_court_min_stake",
    "alpha": "general_court_alpha",
    "fee_for_juror": "general_court_fee_for_juror",
    "jurors_for_court_jump": "general_court_jurors_for_jump",
    "times_per_period": "general_court_times_per_period",
}
ARBITRABLE_ADDRESS = "Config1111111111111111111111111111111111111"


def _scenario_settings(scenario: dict[str, Any], settings: AppSettings) -> AppSettings:
    court = scenario.get("court", {})
    unknown = set(court) - set(_COURT_OVERRIDES)
    if unknown:
        raise ValueError(f"unknown court parameters: {sorted(unknown)}")
    update = {_COURT_OVERRIDES[key]: value for key, value in court.items()}
    if "times_per_period" in update:
        update["general_court_times_per_period"] = tuple(update["general_court_times_per_period"])
    return settings.model_copy(update=update)


def _salt(seed: str, account: str) -> int:
    return int.from_bytes(hashlib.sha256(f"{seed}:{account}".encode()).digest()[:16], byteorder="big")


def _draw_panel(engine: Engine, dispute_id: int, iterations: int) -> None:
    dispute = engine.core.get_dispute(dispute_id)
    while len(dispute.current_round.drawn_jurors) < dispute.nb_votes:
        if engine.core.draw(dispute_id, iterations) == 0:
            raise PreconditionError("no juror could be drawn; is anybody staked?")


def _advance_past(engine: Engine, clock: ManualClock, dispute_id: int) -> None:
    dispute = engine.core.get_dispute(dispute_id)
    court = engine.registry.court(dispute.court_id)
    clock.advance(court.time_for(dispute.period))
    engine.core.pass_period(dispute_id)


def run_scenario(scenario: dict[str, Any], settings: AppSettings) -> JsonDict:
    logger = get_logger("staked_court.simulation")
    seed = str(scenario.get("seed", "staked-court"))
    number_of_choices = int(scenario.get("choices", 2))
    min_jurors = int(scenario.get("min_jurors", settings.min_jurors))

    jurors = normalize_juror_stakes(scenario.get("jurors", []))
    if not jurors:
        raise ValueError("scenario needs at least one juror")
    votes = {
        normalize_account(account, role="vote"): int(choice)
        for account, choice in scenario.get("votes", {}).items()
    }

    clock = ManualClock()
    engine = build_engine(
        _scenario_settings(scenario, settings),
        clock=clock,
        rng=HashChainRNG(seed.encode()),
    )
    core = engine.core
    kit = engine.classic_kit

    for account, stake in jurors:
        engine.fund_juror(account, stake)
        engine.registry.set_stake(account, GENERAL_COURT, stake)

    arbitrable = RecordingArbitrable(address=ARBITRABLE_ADDRESS)
    cost = core.arbitration_cost(GENERAL_COURT, min_jurors)
    engine.fund_account(arbitrable.address, cost)
    dispute_id = core.create_dispute(
        arbitrable, number_of_choices, value=cost, court_id=GENERAL_COURT, min_jurors=min_jurors
    )

    clock.advance(engine.registry.court(GENERAL_COURT).time_for(Period.EVIDENCE))
    _draw_panel(engine, dispute_id, settings.keeper_iterations)
    core.pass_period(dispute_id)

    slots: dict[str, list[int]] = {}
    for vote_id, path in enumerate(core.get_dispute(dispute_id).current_round.drawn_jurors):
        slots.setdefault(path.account, []).append(vote_id)

    if core.current_period(dispute_id) == Period.COMMIT:
        for account, vote_ids in slots.items():
            if account in votes:
                kit.cast_commit(account, dispute_id, vote_ids, hash_vote(votes[account], _salt(seed, account)))
        if core.current_period(dispute_id) == Period.COMMIT:
            _advance_past(engine, clock, dispute_id)

    for account, vote_ids in slots.items():
        if account in votes:
            kit.cast_vote(account, dispute_id, vote_ids, votes[account], _salt(seed, account))
    if core.current_period(dispute_id) == Period.VOTE:
        _advance_past(engine, clock, dispute_id)
    _advance_past(engine, clock, dispute_id)

    round_index = core.number_of_rounds(dispute_id) - 1
    while core.get_round(dispute_id, round_index).repartitions < core.settlement_limit(dispute_id, round_index):
        core.execute(dispute_id, round_index, settings.keeper_iterations)
    ruling = core.execute_ruling(dispute_id)

    summary: JsonDict = {
        "dispute_id": dispute_id,
        "ruling": ruling,
        "panel": [path.account for path in core.get_round(dispute_id, round_index).drawn_jurors],
        "round": kit.get_round_info(dispute_id, round_index),
        "penalties": core.get_round(dispute_id, round_index).penalties,
        "jurors": {
            account: {
                "staked": engine.registry.juror_balance(account, GENERAL_COURT)[0],
                "locked": engine.registry.juror_balance(account, GENERAL_COURT)[1],
                "stake_token_balance": engine.stake_token.balance_of(account),
                "fee_token_balance": engine.fee_token.balance_of(account),
            }
            for account, _ in jurors
        },
        "events": len(engine.events),
    }
    logger.info("scenario_completed", dispute_id=dispute_id, ruling=ruling, events=len(engine.events))
    return summary
