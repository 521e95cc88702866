from __future__ import annotations

from argparse import Namespace

from staked_court.commands._inputs import non_negative_int
from staked_court.config import AppSettings
from staked_court.dispute_kits.classic import hash_vote
from staked_court.types import CommandResult, CommandStatus


def run_verify_commit(args: Namespace, _: AppSettings) -> CommandResult:
    commit = str(getattr(args, "commit", "") or "").strip().lower()
    if not commit:
        return CommandResult(
            command="verify-commit",
            status=CommandStatus.FAILED,
            details={"error": "commit is required"},
        )

    try:
        choice = non_negative_int(args, "choice")
        salt = non_negative_int(args, "salt")
    except ValueError as exc:
        return CommandResult(
            command="verify-commit",
            status=CommandStatus.FAILED,
            details={"error": str(exc)},
        )

    expected = hash_vote(choice, salt)
    if expected != commit:
        return CommandResult(
            command="verify-commit",
            status=CommandStatus.FAILED,
            details={
                "error": "commit mismatch",
                "choice": choice,
                "commit": commit,
            },
        )

    return CommandResult(
        command="verify-commit",
        status=CommandStatus.EXECUTED,
        details={
            "choice": choice,
            "commit": commit,
            "verified": True,
        },
    )
