from __future__ import annotations

import asyncio
from dataclasses import dataclass

from staked_court.collaborators.clock import SystemClock
from staked_court.config import AppSettings, get_settings
from staked_court.engine import Engine, build_engine
from staked_court.errors import InvariantViolationError, PreconditionError
from staked_court.observability.logging import get_logger
from staked_court.solana.blockhash_rng import BlockhashRNG
from staked_court.solana.rpc_client import RpcClientFactory
from staked_court.types import Period


@dataclass(slots=True)
class Keeper:
    """Pushes every open dispute one bounded step forward per cycle.

    Drawing and settlement are chunked by ``iterations``; periods are only
    passed once the core accepts the transition.
    """

    engine: Engine
    iterations: int = 32
    poll_interval_seconds: float = 2.0
    blockhash_rng: BlockhashRNG | None = None

    async def run_once(self) -> dict[int, str]:
        logger = get_logger("staked_court.keeper")
        if self.blockhash_rng is not None:
            await self.blockhash_rng.refresh()

        actions: dict[int, str] = {}
        for dispute_id in self.engine.core.open_dispute_ids():
            try:
                actions[dispute_id] = self._step(dispute_id)
            except PreconditionError as exc:
                logger.debug("keeper_waiting", dispute_id=dispute_id, reason=exc.message)
            except InvariantViolationError as exc:
                logger.error(
                    "keeper_step_failed",
                    dispute_id=dispute_id,
                    error_type=type(exc).__name__,
                    error=exc.message,
                )
        logger.info("keeper_cycle", actions={str(key): value for key, value in actions.items()})
        return actions

    def _step(self, dispute_id: int) -> str:
        core = self.engine.core
        dispute = core.get_dispute(dispute_id)
        if dispute.period == Period.EVIDENCE:
            if len(dispute.current_round.drawn_jurors) < dispute.nb_votes:
                core.draw(dispute_id, self.iterations)
                return "draw"
            core.pass_period(dispute_id)
            return "pass_period"

        if dispute.period != Period.EXECUTION:
            core.pass_period(dispute_id)
            return "pass_period"

        for round_index, round_ in enumerate(dispute.rounds):
            if round_.repartitions < core.settlement_limit(dispute_id, round_index):
                core.execute(dispute_id, round_index, self.iterations)
                return "execute"
        core.execute_ruling(dispute_id)
        return "execute_ruling"

    async def run_forever(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.poll_interval_seconds)


def default_keeper(settings: AppSettings | None = None) -> Keeper:
    settings = settings or get_settings()
    blockhash_rng = None
    if settings.keeper_rng == "blockhash":
        blockhash_rng = BlockhashRNG(RpcClientFactory(settings).create())
    engine = build_engine(settings, clock=SystemClock(), rng=blockhash_rng)
    return Keeper(
        engine=engine,
        iterations=settings.keeper_iterations,
        poll_interval_seconds=settings.keeper_poll_interval_seconds,
        blockhash_rng=blockhash_rng,
    )
