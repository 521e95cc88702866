"""In-memory host wiring tokens, registry, core and the classic kit together."""
from __future__ import annotations

from dataclasses import dataclass

from staked_court.collaborators.clock import Clock, ManualClock
from staked_court.collaborators.rng import HashChainRNG, RandomNumberGenerator
from staked_court.collaborators.token import InMemoryToken
from staked_court.config import AppSettings, get_settings
from staked_court.core import ArbitrationCore
from staked_court.dispute_kits.classic import ClassicDisputeKit
from staked_court.domain.events import EventLog
from staked_court.observability.logging import get_logger
from staked_court.registry import StakeRegistry
from staked_court.types import DISPUTE_KIT_CLASSIC, FORKING_COURT, GENERAL_COURT

CORE_ADDRESS = "staked-court-core"
CLASSIC_KIT_ADDRESS = "staked-court-kit-classic"


@dataclass(slots=True)
class Engine:
    settings: AppSettings
    clock: Clock
    events: EventLog
    stake_token: InMemoryToken
    fee_token: InMemoryToken
    registry: StakeRegistry
    core: ArbitrationCore
    classic_kit: ClassicDisputeKit

    @property
    def governor(self) -> str:
        return self.registry.governor

    def fund_juror(self, account: str, amount: int) -> None:
        """Mint stake tokens to ``account`` and let the core collect them."""
        self.stake_token.mint(account, amount)
        allowance = self.stake_token.allowance(account, self.core.address)
        self.stake_token.approve(account, self.core.address, allowance + amount)

    def fund_account(self, account: str, amount: int, *, spender: str | None = None) -> None:
        """Mint fee tokens to ``account`` and approve ``spender`` (the core by default)."""
        spender = spender or self.core.address
        self.fee_token.mint(account, amount)
        self.fee_token.approve(account, spender, self.fee_token.allowance(account, spender) + amount)


def build_engine(
    settings: AppSettings | None = None,
    *,
    clock: Clock | None = None,
    rng: RandomNumberGenerator | None = None,
) -> Engine:
    settings = settings or get_settings()
    clock = clock or ManualClock()
    rng = rng or HashChainRNG()
    events = EventLog()
    stake_token = InMemoryToken("STAKE")
    fee_token = InMemoryToken("FEE")

    registry = StakeRegistry(
        custody=CORE_ADDRESS,
        governor=settings.governor,
        stake_token=stake_token,
        events=events,
    )
    core = ArbitrationCore(
        address=CORE_ADDRESS,
        registry=registry,
        fee_token=fee_token,
        clock=clock,
        events=events,
    )
    classic_kit = ClassicDisputeKit(core, rng, address=CLASSIC_KIT_ADDRESS)
    kit_id = core.add_dispute_kit(settings.governor, classic_kit)
    if kit_id != DISPUTE_KIT_CLASSIC:
        raise RuntimeError(f"classic dispute kit registered under id {kit_id}")

    # The forking court is its own parent and the general court sits right below it.
    for _ in (FORKING_COURT, GENERAL_COURT):
        registry.create_court(
            settings.governor,
            parent=FORKING_COURT,
            hidden_votes=settings.general_court_hidden_votes,
            min_stake=settings.general_court_min_stake,
            alpha=settings.general_court_alpha,
            fee_for_juror=settings.general_court_fee_for_juror,
            jurors_for_court_jump=settings.general_court_jurors_for_jump,
            times_per_period=settings.general_court_times_per_period,
            supported_dispute_kits={DISPUTE_KIT_CLASSIC},
            sortition_k=settings.sortition_k,
        )

    get_logger("staked_court.engine").info(
        "engine_ready",
        court_name=settings.court_name,
        app_env=settings.app_env,
        courts=len(registry.courts),
    )
    return Engine(
        settings=settings,
        clock=clock,
        events=events,
        stake_token=stake_token,
        fee_token=fee_token,
        registry=registry,
        core=core,
        classic_kit=classic_kit,
    )
