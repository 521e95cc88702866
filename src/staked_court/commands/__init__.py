"""Command handlers for the staked-court CLI."""

from staked_court.commands.commit_hash import run_commit_hash
from staked_court.commands.run_scenario import run_run_scenario
from staked_court.commands.verify_commit import run_verify_commit

__all__ = [
    "run_commit_hash",
    "run_run_scenario",
    "run_verify_commit",
]
