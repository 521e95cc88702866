from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from staked_court.cli import entrypoint

ALICE = "11111111111111111111111111111111"
BOB = "Stake11111111111111111111111111111111111111"
CAROL = "Vote111111111111111111111111111111111111111"


def _last_json_line(captured: str) -> dict[str, object]:
    # Structured logs share stdout with the command result, which comes last.
    return json.loads(captured.strip().splitlines()[-1])


def _write_scenario(tmp_path: Path, scenario: dict[str, object]) -> str:
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps(scenario), encoding="utf-8")
    return str(path)


def test_cli_commit_hash_json_output(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = entrypoint(["--json", "commit-hash", "--choice", "2", "--salt", "1234"])

    assert exit_code == 0

    payload = _last_json_line(capsys.readouterr().out)
    expected = hashlib.sha256((2).to_bytes(32, "big") + (1234).to_bytes(32, "big")).hexdigest()

    assert payload["command"] == "commit-hash"
    assert payload["status"] == "executed"
    assert payload["details"] == {"choice": 2, "commit": expected}


def test_verify_commit_mismatch_fails(capsys: pytest.CaptureFixture[str]) -> None:
    commit = hashlib.sha256((1).to_bytes(32, "big") + (5).to_bytes(32, "big")).hexdigest()

    exit_code = entrypoint(
        ["--json", "verify-commit", "--commit", commit, "--choice", "2", "--salt", "5"]
    )

    assert exit_code == 1

    payload = _last_json_line(capsys.readouterr().out)

    assert payload["command"] == "verify-commit"
    assert payload["status"] == "failed"
    assert payload["details"]["error"] == "commit mismatch"


def test_run_scenario_with_hidden_votes(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    scenario = _write_scenario(
        tmp_path,
        {
            "seed": "cli",
            "choices": 2,
            "court": {"hidden_votes": True},
            "jurors": [
                {"account": ALICE, "stake": 1_000},
                {"account": BOB, "stake": 1_000},
                {"account": CAROL, "stake": 1_000},
            ],
            "votes": {ALICE: 1, BOB: 1, CAROL: 1},
        },
    )

    exit_code = entrypoint(["--json", "run-scenario", "--scenario", scenario])

    assert exit_code == 0

    payload = _last_json_line(capsys.readouterr().out)
    details = payload["details"]

    assert payload["status"] == "executed"
    assert details["ruling"] == 1
    assert details["penalties"] == 0
    assert len(details["panel"]) == 3
    assert details["round"]["total_committed"] == 3
    assert sum(juror["fee_token_balance"] for juror in details["jurors"].values()) == 30
    assert all(juror["staked"] == 1_000 for juror in details["jurors"].values())


def test_run_scenario_silent_jurors_lose_their_stake(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    scenario = _write_scenario(
        tmp_path,
        {"jurors": [{"account": ALICE, "stake": 1_000}], "votes": {}},
    )

    exit_code = entrypoint(["--json", "run-scenario", "--scenario", scenario])

    assert exit_code == 0

    details = _last_json_line(capsys.readouterr().out)["details"]

    assert details["ruling"] == 0
    assert details["penalties"] == 600
    assert details["jurors"][ALICE] == {
        "staked": 0,
        "locked": 0,
        "stake_token_balance": 400,
        "fee_token_balance": 0,
    }


def test_run_scenario_rejects_invalid_accounts(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    scenario = _write_scenario(tmp_path, {"jurors": [{"account": "not-a-key", "stake": 1_000}]})

    exit_code = entrypoint(["--json", "run-scenario", "--scenario", scenario])

    assert exit_code == 1

    payload = _last_json_line(capsys.readouterr().out)

    assert payload["status"] == "failed"
    assert "valid Solana public key" in payload["details"]["error"]


def test_run_scenario_reports_rejected_stakes(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    scenario = _write_scenario(tmp_path, {"jurors": [{"account": ALICE, "stake": 50}]})

    exit_code = entrypoint(["--json", "run-scenario", "--scenario", scenario])

    assert exit_code == 1

    details = _last_json_line(capsys.readouterr().out)["details"]

    assert details["error_type"] == "StakingError"


def test_run_scenario_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = entrypoint(["--json", "run-scenario", "--scenario", str(tmp_path / "missing.json")])

    assert exit_code == 1

    payload = _last_json_line(capsys.readouterr().out)

    assert payload["details"]["error"].startswith("could not read scenario")
