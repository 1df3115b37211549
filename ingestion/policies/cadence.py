"""
Date-driven policy helpers. Everything here is a pure function of the as-of
date and configuration, so schedules and contract switches can be tested
for any day without touching the clock.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

DAILY = "daily"
WEEKLY = "weekly"

# 03:00 in the sync timezone; weekly runs on Mondays
CADENCE_CRON = {
    DAILY: "0 3 * * *",
    WEEKLY: "0 3 * * mon",
}


@dataclass(frozen=True)
class RolloutWindow:
    """Period during which a state changes its list often (phased rollouts)"""
    start: date
    end: date
    cadence: str = DAILY
    name: str = ""

    def contains(self, as_of: date) -> bool:
        return self.start <= as_of <= self.end


@dataclass(frozen=True)
class Contract:
    """Infant formula contract; brand None means not yet announced"""
    brand: Optional[str]
    start: date
    end: Optional[date] = None

    def active_on(self, as_of: date) -> bool:
        if as_of < self.start:
            return False
        return self.end is None or as_of <= self.end


def recommended_cadence(as_of: date, windows: List[RolloutWindow], default: str = WEEKLY) -> str:
    for window in windows:
        if window.contains(as_of):
            return window.cadence
    return default


def cadence_to_cron(cadence: str) -> str:
    try:
        return CADENCE_CRON[cadence]
    except KeyError:
        raise ValueError(f"Unknown sync cadence: {cadence!r}")


def current_contract(as_of: date, contracts: List[Contract]) -> Optional[Contract]:
    """Contract in force on as_of; the latest start wins if windows overlap"""
    active = [c for c in contracts if c.active_on(as_of)]
    if not active:
        return None
    return max(active, key=lambda c: c.start)
