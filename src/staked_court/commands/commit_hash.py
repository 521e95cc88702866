from __future__ import annotations

from argparse import Namespace

from staked_court.commands._inputs import non_negative_int
from staked_court.config import AppSettings
from staked_court.dispute_kits.classic import hash_vote
from staked_court.types import CommandResult, CommandStatus


def run_commit_hash(args: Namespace, _: AppSettings) -> CommandResult:
    try:
        choice = non_negative_int(args, "choice")
        salt = non_negative_int(args, "salt")
    except ValueError as exc:
        return CommandResult(
            command="commit-hash",
            status=CommandStatus.FAILED,
            details={"error": str(exc)},
        )

    return CommandResult(
        command="commit-hash",
        status=CommandStatus.EXECUTED,
        details={
            "choice": choice,
            "commit": hash_vote(choice, salt),
        },
    )
