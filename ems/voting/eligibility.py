# ems/voting/eligibility.py

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from ems.voting.clock import as_utc


class EligibilityError(Enum):
    NOT_STARTED = "NOT_STARTED"
    CLOSED = "CLOSED"
    ALREADY_VOTED = "ALREADY_VOTED"
    INVALID_CANDIDATE = "INVALID_CANDIDATE"
    STORAGE_CONFLICT = "STORAGE_CONFLICT"
    TIME_SOURCE_UNAVAILABLE = "TIME_SOURCE_UNAVAILABLE"
    UNKNOWN_VOTER = "UNKNOWN_VOTER"


# Reasons that mean "try again later", never "allowed"
RETRYABLE = frozenset({EligibilityError.STORAGE_CONFLICT, EligibilityError.TIME_SOURCE_UNAVAILABLE})


@dataclass(frozen=True)
class ElectionWindow:
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self):
        # Frozen, so normalise through object.__setattr__
        if self.start is not None:
            object.__setattr__(self, 'start', as_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, 'end', as_utc(self.end))

    @property
    def is_configured(self) -> bool:
        return self.start is not None and self.end is not None


@dataclass(frozen=True)
class Eligibility:
    allowed: bool
    reason: Optional[EligibilityError] = None

    @classmethod
    def ok(cls):
        return cls(True)

    @classmethod
    def denied(cls, reason: EligibilityError):
        return cls(False, reason)


def can_vote(now: datetime, window: ElectionWindow, voter) -> Eligibility:
    """Decide whether ``voter`` may vote at ``now``.

    Window bounds are inclusive. The window is checked before the voter's
    flag, so a voter who already voted sees CLOSED once the election ends.
    """
    now = as_utc(now)
    if not window.is_configured or now < window.start:
        return Eligibility.denied(EligibilityError.NOT_STARTED)
    if now > window.end:
        return Eligibility.denied(EligibilityError.CLOSED)
    if voter.has_voted:
        return Eligibility.denied(EligibilityError.ALREADY_VOTED)
    return Eligibility.ok()


def election_status(now: datetime, window: ElectionWindow) -> str:
    if not window.is_configured:
        return "not_configured"
    now = as_utc(now)
    if now < window.start:
        return "not_started"
    if now > window.end:
        return "closed"
    return "ongoing"
