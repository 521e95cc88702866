from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from staked_court.observability.logging import get_logger
from staked_court.types import Period


@dataclass(slots=True, frozen=True)
class Event:
    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Period):
                data[key] = value.name.lower()
        return {"event": type(self).__name__, **data}


@dataclass(slots=True, frozen=True)
class StakeSet(Event):
    account: str
    court_id: int
    amount: int


@dataclass(slots=True, frozen=True)
class DisputeCreation(Event):
    dispute_id: int
    arbitrable: str


@dataclass(slots=True, frozen=True)
class NewPeriod(Event):
    dispute_id: int
    period: Period


@dataclass(slots=True, frozen=True)
class AppealPossible(Event):
    dispute_id: int
    arbitrable: str


@dataclass(slots=True, frozen=True)
class AppealDecision(Event):
    dispute_id: int
    arbitrable: str


@dataclass(slots=True, frozen=True)
class Draw(Event):
    account: str
    dispute_id: int
    round: int
    vote_id: int


@dataclass(slots=True, frozen=True)
class TokenAndFeeShift(Event):
    account: str
    dispute_id: int
    token_amount: int
    fee_amount: int


@dataclass(slots=True, frozen=True)
class Ruling(Event):
    dispute_id: int
    arbitrable: str
    ruling: int


@dataclass(slots=True, frozen=True)
class CommitCast(Event):
    dispute_id: int
    account: str
    vote_ids: tuple[int, ...]
    commit: str


@dataclass(slots=True, frozen=True)
class VoteCast(Event):
    dispute_id: int
    account: str
    vote_ids: tuple[int, ...]
    choice: int


@dataclass(slots=True, frozen=True)
class Contribution(Event):
    dispute_id: int
    round: int
    choice: int
    contributor: str
    amount: int


@dataclass(slots=True, frozen=True)
class ChoiceFunded(Event):
    dispute_id: int
    round: int
    choice: int


@dataclass(slots=True, frozen=True)
class Withdrawal(Event):
    dispute_id: int
    round: int
    choice: int
    beneficiary: str
    amount: int


@dataclass(slots=True)
class EventLog:
    """Append-only record of every notification the court emits."""

    events: list[Event] = field(default_factory=list)

    def emit(self, event: Event) -> None:
        self.events.append(event)
        payload = event.as_dict()
        name = payload.pop("event")
        get_logger("staked_court.events").info(name, **payload)

    def of_type(self, event_type: type[Event]) -> list[Event]:
        return [event for event in self.events if isinstance(event, event_type)]

    def __len__(self) -> int:
        return len(self.events)
