from __future__ import annotations

import asyncio
import hashlib
from types import SimpleNamespace

import pytest
from solders.hash import Hash

from staked_court.collaborators.arbitrable import RecordingArbitrable
from staked_court.collaborators.clock import ManualClock, SystemClock
from staked_court.config import AppSettings
from staked_court.engine import build_engine
from staked_court.errors import PreconditionError
from staked_court.runtime.keeper import Keeper, default_keeper
from staked_court.solana.blockhash_rng import BlockhashRNG

ALICE = "alice"
BLOCKHASH = Hash(bytes([1] * 32))


class FakeRpcClient:
    def __init__(self) -> None:
        self.calls = 0

    async def get_latest_blockhash(self) -> SimpleNamespace:
        self.calls += 1
        return SimpleNamespace(value=SimpleNamespace(blockhash=BLOCKHASH))


def test_keeper_drives_a_dispute_to_its_ruling(driver) -> None:
    driver.stake(ALICE, 1_000)
    dispute_id, arbitrable = driver.open_dispute()
    keeper = Keeper(engine=driver.engine)

    actions: list[str] = []
    for _ in range(10):
        actions.extend(asyncio.run(keeper.run_once()).values())
        driver.clock.advance(240)
        if driver.core.is_ruled(dispute_id):
            break

    assert actions == ["draw", "pass_period", "pass_period", "pass_period", "execute", "execute_ruling"]
    assert arbitrable.rulings == [(dispute_id, 0)]
    assert asyncio.run(keeper.run_once()) == {}


def test_keeper_waits_while_a_period_is_running(driver) -> None:
    driver.stake(ALICE, 1_000)
    dispute_id, _ = driver.open_dispute()
    keeper = Keeper(engine=driver.engine)

    assert asyncio.run(keeper.run_once()) == {dispute_id: "draw"}
    assert asyncio.run(keeper.run_once()) == {}
    assert driver.core.current_period(dispute_id).name == "EVIDENCE"


def test_keeper_settles_in_chunks(driver) -> None:
    driver.stake(ALICE, 1_000)
    dispute_id, _ = driver.open_dispute()
    driver.start_voting(dispute_id)
    driver.vote_all(dispute_id, 1)
    driver.to_execution(dispute_id)
    keeper = Keeper(engine=driver.engine, iterations=2)

    actions = [asyncio.run(keeper.run_once())[dispute_id] for _ in range(4)]

    assert actions == ["execute", "execute", "execute", "execute_ruling"]
    assert driver.core.get_round(dispute_id, 0).repartitions == 6


def test_blockhash_rng_needs_a_refresh() -> None:
    rng = BlockhashRNG(FakeRpcClient())  # type: ignore[arg-type]

    with pytest.raises(PreconditionError):
        rng.get_uncorrelated_rn(5)

    assert asyncio.run(rng.refresh()) == BLOCKHASH
    expected = hashlib.sha256(bytes(BLOCKHASH) + (5).to_bytes(32, "big")).digest()
    assert rng.get_uncorrelated_rn(5) == int.from_bytes(expected, "big")
    assert rng.get_uncorrelated_rn(5) != rng.get_uncorrelated_rn(6)


def test_keeper_refreshes_the_blockhash_before_drawing() -> None:
    client = FakeRpcClient()
    rng = BlockhashRNG(client)  # type: ignore[arg-type]
    engine = build_engine(AppSettings(), clock=ManualClock(), rng=rng)
    engine.fund_juror(ALICE, 1_000)
    engine.registry.set_stake(ALICE, 1, 1_000)
    engine.fund_account("app", 30)
    dispute_id = engine.core.create_dispute(RecordingArbitrable(address="app"), 2, value=30)

    actions = asyncio.run(Keeper(engine=engine, blockhash_rng=rng).run_once())

    assert actions == {dispute_id: "draw"}
    assert client.calls == 1
    assert rng.blockhash == BLOCKHASH
    assert len(engine.core.get_dispute(dispute_id).current_round.drawn_jurors) == 3


def testdefault_keeper_uses_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KEEPER_RNG", "blockhash")
    monkeypatch.setenv("KEEPER_ITERATIONS", "8")

    keeper = default_keeper(AppSettings())

    assert keeper.iterations == 8
    assert isinstance(keeper.blockhash_rng, BlockhashRNG)
    assert keeper.engine.classic_kit.rng is keeper.blockhash_rng
    assert isinstance(keeper.engine.clock, SystemClock)


def testdefault_keeper_without_blockhash() -> None:
    keeper = default_keeper(AppSettings(keeper_rng="hashchain"))

    assert keeper.blockhash_rng is None
    assert keeper.poll_interval_seconds == 2.0
