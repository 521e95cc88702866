from __future__ import annotations

import json
from argparse import Namespace
from pathlib import Path

from staked_court.config import AppSettings
from staked_court.errors import ArbitrationError
from staked_court.observability.logging import get_logger
from staked_court.simulation import run_scenario
from staked_court.types import CommandResult, CommandStatus


def run_run_scenario(args: Namespace, settings: AppSettings) -> CommandResult:
    raw_path = str(getattr(args, "scenario", "") or "").strip()
    if not raw_path:
        return CommandResult(
            command="run-scenario",
            status=CommandStatus.FAILED,
            details={"error": "scenario is required"},
        )

    try:
        scenario = json.loads(Path(raw_path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        return CommandResult(
            command="run-scenario",
            status=CommandStatus.FAILED,
            details={"error": f"could not read scenario: {exc}", "scenario": raw_path},
        )
    if not isinstance(scenario, dict):
        return CommandResult(
            command="run-scenario",
            status=CommandStatus.FAILED,
            details={"error": "scenario must be a JSON object", "scenario": raw_path},
        )

    try:
        summary = run_scenario(scenario, settings)
    except ArbitrationError as exc:
        get_logger("staked_court.commands").warning(
            "scenario_rejected", scenario=raw_path, error_type=type(exc).__name__, error=exc.message
        )
        return CommandResult(
            command="run-scenario",
            status=CommandStatus.FAILED,
            details={
                "error": exc.message,
                "error_type": type(exc).__name__,
                "scenario": raw_path,
            },
        )
    except (KeyError, TypeError, ValueError) as exc:
        return CommandResult(
            command="run-scenario",
            status=CommandStatus.FAILED,
            details={"error": f"invalid scenario: {exc}", "scenario": raw_path},
        )

    return CommandResult(
        command="run-scenario",
        status=CommandStatus.EXECUTED,
        details={"scenario": raw_path, **summary},
    )
