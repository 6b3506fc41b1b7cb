# ems/voting/tally.py

from dataclasses import dataclass
from typing import Dict, List

from sqlalchemy import case, func, select

from ems.database.models import Candidate, Position, Voter
from ems.voting.store import candidates_by_position


@dataclass(frozen=True)
class CandidateTally:
    id: int
    first_name: str
    last_name: str
    position: str
    department: str
    vote_count: int

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'

    @classmethod
    def from_model(cls, candidate: Candidate):
        return cls(
            id=candidate.id,
            first_name=candidate.first_name,
            last_name=candidate.last_name,
            position=candidate.position,
            department=candidate.department,
            vote_count=int(candidate.vote_count or 0),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.full_name,
            'position': self.position,
            'department': self.department,
            'votes': self.vote_count,
        }


@dataclass(frozen=True)
class ParticipationStats:
    total: int
    voted: int
    not_voted: int

    def to_dict(self):
        return {'total': self.total, 'voted': self.voted, 'notVoted': self.not_voted}


def _ranking_key(tally: CandidateTally):
    return (-tally.vote_count, tally.last_name, tally.first_name, tally.id)


class TallyService:
    """Read-only views over committed tallies."""

    def __init__(self, session):
        self.session = session

    def results_by_position(self) -> Dict[Position, List[CandidateTally]]:
        grouped = candidates_by_position(self.session)
        return {
            position: sorted((CandidateTally.from_model(c) for c in candidates), key=_ranking_key)
            for position, candidates in grouped.items()
        }

    def participation_stats(self) -> ParticipationStats:
        total, voted = self.session.execute(
            select(
                func.count(Voter.id),
                func.coalesce(func.sum(case((Voter.has_voted.is_(True), 1), else_=0)), 0),
            )
        ).one()
        total, voted = int(total), int(voted)
        return ParticipationStats(total=total, voted=voted, not_voted=total - voted)
