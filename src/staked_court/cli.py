from __future__ import annotations

import json
from argparse import ArgumentParser, Namespace
from collections.abc import Callable, Sequence

from staked_court.commands import run_commit_hash, run_run_scenario, run_verify_commit
from staked_court.config import AppSettings, get_settings
from staked_court.observability.logging import configure_logging
from staked_court.types import CommandResult, CommandStatus

CommandHandler = Callable[[Namespace, AppSettings], CommandResult]

COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "commit-hash": run_commit_hash,
    "verify-commit": run_verify_commit,
    "run-scenario": run_run_scenario,
}


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="staked-court", description="Staked court arbitration CLI")
    parser.add_argument("--json", action="store_true", help="emit machine-readable JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    commit = subparsers.add_parser("commit-hash", help="hash a hidden vote for the commit period")
    commit.add_argument("--choice", required=True, type=int)
    commit.add_argument("--salt", required=True, type=int)

    verify = subparsers.add_parser("verify-commit", help="check a revealed vote against its commit")
    verify.add_argument("--commit", required=True)
    verify.add_argument("--choice", required=True, type=int)
    verify.add_argument("--salt", required=True, type=int)

    scenario = subparsers.add_parser("run-scenario", help="simulate a full dispute from a JSON file")
    scenario.add_argument("--scenario", required=True)

    return parser


def _emit_result(result: CommandResult, *, as_json: bool) -> None:
    if as_json:
        print(result.to_json())
        return

    print(f"{result.command}: {result.status.value}")
    if result.details:
        print(json.dumps(result.details, indent=2, sort_keys=True))


def entrypoint(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    settings = get_settings()
    configure_logging(settings.log_level, settings.court_name)

    handler = COMMAND_HANDLERS[str(args.command)]
    result = handler(args, settings)
    _emit_result(result, as_json=bool(args.json))
    return 1 if result.status == CommandStatus.FAILED else 0


if __name__ == "__main__":
    raise SystemExit(entrypoint())
