from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: str = "dev"
    log_level: str = "INFO"
    court_name: str = "staked-court"

    governor: str = "GovER5Lthms1111111111111111111111111111111"
    sortition_k: int = 4
    min_jurors: int = 3

    general_court_min_stake: int = 200
    general_court_alpha: int = 10_000
    general_court_fee_for_juror: int = 10
    general_court_jurors_for_jump: int = 511
    general_court_hidden_votes: bool = False
    general_court_times_per_period: tuple[int, int, int, int] = (120, 120, 120, 240)

    solana_rpc_url: str = "http://127.0.0.1:8899"
    keeper_poll_interval_seconds: float = Field(default=2.0, gt=0)
    keeper_iterations: int = Field(default=32, gt=0)
    keeper_rng: Literal["hashchain", "blockhash"] = "hashchain"


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()
