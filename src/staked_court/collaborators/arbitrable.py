from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


class Arbitrable(Protocol):
    address: str

    def rule(self, dispute_id: int, ruling: int) -> None:
        ...


@dataclass(slots=True)
class RecordingArbitrable:
    """Arbitrable application that keeps every ruling it receives."""

    address: str
    rulings: list[tuple[int, int]] = field(default_factory=list)

    def rule(self, dispute_id: int, ruling: int) -> None:
        self.rulings.append((dispute_id, ruling))
