# ems/voting/transaction.py

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from ems.database.models import Candidate, Position, Voter
from ems.voting.clock import TimeSourceUnavailable, as_utc
from ems.voting.eligibility import Eligibility, EligibilityError, can_vote
from ems.voting.store import load_election_window
from ems.voting.tally import CandidateTally

logger = logging.getLogger(__name__)


class VoteDeclined(Exception):
    """Unwinds a vote attempt; turned into a declined VoteResult."""

    def __init__(self, reason: EligibilityError, detail: str = ""):
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail


@dataclass(frozen=True)
class VoteResult:
    success: bool
    reason: Optional[EligibilityError] = None
    candidates: Tuple[CandidateTally, ...] = field(default_factory=tuple)

    @classmethod
    def accepted(cls, candidates):
        return cls(True, None, tuple(candidates))

    @classmethod
    def declined(cls, reason: EligibilityError):
        return cls(False, reason)


MAX_CANDIDATE_ID = 2 ** 63 - 1


def _parse_candidate_id(value) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not a candidate id")
    if isinstance(value, int):
        candidate_id = value
    elif isinstance(value, str) and value.strip().isdigit():
        candidate_id = int(value.strip())
    else:
        raise ValueError(f"not a candidate id: {value!r}")
    # Ids must fit a signed 64-bit INTEGER column
    if not 1 <= candidate_id <= MAX_CANDIDATE_ID:
        raise ValueError(f"candidate id out of range: {value!r}")
    return candidate_id


def normalise_ballot(selections: Mapping) -> Dict[Position, int]:
    """One candidate id per recognised position, or VoteDeclined(INVALID_CANDIDATE)."""
    if not isinstance(selections, Mapping):
        raise VoteDeclined(EligibilityError.INVALID_CANDIDATE, "ballot must map positions to candidates")

    ballot = {}
    for key, raw_id in selections.items():
        try:
            position = key if isinstance(key, Position) else Position(str(key).strip().lower())
        except ValueError:
            raise VoteDeclined(EligibilityError.INVALID_CANDIDATE, f"unknown position {key!r}")
        if position in ballot:
            raise VoteDeclined(EligibilityError.INVALID_CANDIDATE, f"position {position.value} selected twice")
        try:
            ballot[position] = _parse_candidate_id(raw_id)
        except ValueError as e:
            raise VoteDeclined(EligibilityError.INVALID_CANDIDATE, str(e))

    missing = [p.value for p in Position if p not in ballot]
    if missing:
        raise VoteDeclined(EligibilityError.INVALID_CANDIDATE, f"no selection for {', '.join(missing)}")
    return ballot


class VoteService:
    """Eligibility read path and the vote transaction.

    The session, clock and audit logger are supplied by the caller; the
    service keeps no state of its own between calls.
    """

    def __init__(self, session, clock, audit_logger=None):
        self.session = session
        self.clock = clock
        self.audit_logger = audit_logger

    def _audit(self, event_type, data, voter_id):
        if self.audit_logger is not None:
            self.audit_logger.log_security_event(event_type, data, user_id=voter_id)

    def _load_voter(self, voter_id, for_update=False) -> Voter:
        try:
            key = int(voter_id)
        except (TypeError, ValueError):
            raise VoteDeclined(EligibilityError.UNKNOWN_VOTER, f"bad voter id {voter_id!r}")
        voter = self.session.get(Voter, key, populate_existing=True, with_for_update=True if for_update else None)
        if voter is None:
            raise VoteDeclined(EligibilityError.UNKNOWN_VOTER, f"no voter {key}")
        return voter

    def check_eligibility(self, voter_id) -> Eligibility:
        """Read path: may this voter be shown a ballot right now?"""
        try:
            now = self.clock.now()
        except TimeSourceUnavailable as e:
            logger.warning("Eligibility check for voter %s denied, clock unavailable: %s", voter_id, e)
            return Eligibility.denied(EligibilityError.TIME_SOURCE_UNAVAILABLE)
        try:
            voter = self._load_voter(voter_id)
            return can_vote(now, load_election_window(self.session), voter)
        except VoteDeclined as e:
            return Eligibility.denied(e.reason)
        except SQLAlchemyError:
            logger.exception("Eligibility check for voter %s failed in storage", voter_id)
            self.session.rollback()
            return Eligibility.denied(EligibilityError.STORAGE_CONFLICT)

    def cast_vote(self, voter_id, selections: Mapping) -> VoteResult:
        try:
            now = self.clock.now()
        except TimeSourceUnavailable as e:
            logger.warning("Vote by voter %s denied, clock unavailable: %s", voter_id, e)
            self._audit('vote_declined', {'reason': EligibilityError.TIME_SOURCE_UNAVAILABLE.value}, voter_id)
            return VoteResult.declined(EligibilityError.TIME_SOURCE_UNAVAILABLE)

        try:
            candidate_ids = self._apply_ballot(voter_id, selections, as_utc(now))
        except VoteDeclined as e:
            self.session.rollback()
            logger.info("Vote by voter %s declined: %s (%s)", voter_id, e.reason.value, e.detail)
            event = 'duplicate_vote_attempt' if e.reason is EligibilityError.ALREADY_VOTED else 'vote_declined'
            self._audit(event, {'reason': e.reason.value, 'detail': e.detail}, voter_id)
            return VoteResult.declined(e.reason)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Vote by voter %s rolled back after storage error", voter_id)
            self._audit('vote_declined', {'reason': EligibilityError.STORAGE_CONFLICT.value, 'detail': str(e)}, voter_id)
            return VoteResult.declined(EligibilityError.STORAGE_CONFLICT)

        incremented = self._snapshot(candidate_ids)
        logger.info("Vote recorded for voter %s: candidates %s", voter_id, candidate_ids)
        self._audit('vote_cast', {'candidates': candidate_ids}, voter_id)
        return VoteResult.accepted(incremented)

    def _apply_ballot(self, voter_id, selections, now: datetime):
        voter = self._load_voter(voter_id, for_update=True)

        # Re-check under the same transaction as the writes below
        eligibility = can_vote(now, load_election_window(self.session), voter)
        if not eligibility.allowed:
            raise VoteDeclined(eligibility.reason)

        ballot = normalise_ballot(selections)
        candidate_ids = sorted(ballot.values())
        found = {
            c.id: c
            for c in self.session.execute(select(Candidate).where(Candidate.id.in_(candidate_ids))).scalars()
        }
        for position, candidate_id in ballot.items():
            candidate = found.get(candidate_id)
            if candidate is None:
                raise VoteDeclined(EligibilityError.INVALID_CANDIDATE, f"no candidate {candidate_id}")
            if candidate.position != position.value:
                raise VoteDeclined(
                    EligibilityError.INVALID_CANDIDATE,
                    f"candidate {candidate_id} runs for {candidate.position}, not {position.value}",
                )

        # Conditional on the unvoted state: a concurrent winner leaves rowcount 0
        flagged = self.session.execute(
            update(Voter)
            .where(Voter.id == voter.id, Voter.has_voted.is_(False))
            .values(has_voted=True, voted_at=now.replace(tzinfo=None))
            .execution_options(synchronize_session=False)
        )
        if flagged.rowcount != 1:
            raise VoteDeclined(EligibilityError.ALREADY_VOTED, "lost race on has_voted")

        counted = self.session.execute(
            update(Candidate)
            .where(Candidate.id.in_(candidate_ids))
            .values(vote_count=Candidate.vote_count + 1)
            .execution_options(synchronize_session=False)
        )
        if counted.rowcount != len(candidate_ids):
            raise VoteDeclined(EligibilityError.STORAGE_CONFLICT, "candidate removed during vote")

        self.session.commit()
        return candidate_ids

    def _snapshot(self, candidate_ids):
        try:
            rows = self.session.execute(
                select(Candidate).where(Candidate.id.in_(candidate_ids)).order_by(Candidate.id)
            ).scalars()
            return [CandidateTally.from_model(c) for c in rows]
        except SQLAlchemyError:
            # The vote is committed; only the confirmation display is degraded
            logger.exception("Could not reload candidates %s after vote", candidate_ids)
            self.session.rollback()
            return []
