from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Any, NamedTuple

JsonDict = dict[str, Any]

FORKING_COURT = 0
GENERAL_COURT = 1
DISPUTE_KIT_CLASSIC = 1

# Fixed-point divisor for alpha and degree of coherence (basis points).
ALPHA_DIVISOR = 10_000
MAX_STAKE_PATHS = 4
MIN_JURORS = 3


class CommandStatus(StrEnum):
    PENDING = "pending"
    EXECUTED = "executed"
    FAILED = "failed"


class Period(IntEnum):
    EVIDENCE = 0
    COMMIT = 1
    VOTE = 2
    APPEAL = 3
    EXECUTION = 4


class DisputeStatus(StrEnum):
    WAITING = "waiting"
    APPEALABLE = "appealable"
    SOLVED = "solved"


class StakePath(NamedTuple):
    """Leaf identifier in every sortition tree: who staked, and in which court."""

    account: str
    court_id: int


@dataclass(slots=True, frozen=True)
class CommandResult:
    command: str
    status: CommandStatus
    details: JsonDict = field(default_factory=dict)

    def to_dict(self) -> JsonDict:
        return {
            "command": self.command,
            "status": self.status.value,
            "details": self.details,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
