from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


@dataclass(slots=True)
class ManualClock:
    current: int = 1_700_000_000

    def now(self) -> int:
        return self.current

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        self.current += seconds
        return self.current
