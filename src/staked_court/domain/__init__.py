"""Records for courts, jurors, disputes and the notifications they emit."""

from staked_court.domain.court import Court, Juror
from staked_court.domain.dispute import Dispute, Round
from staked_court.domain.events import EventLog

__all__ = [
    "Court",
    "Dispute",
    "EventLog",
    "Juror",
    "Round",
]
