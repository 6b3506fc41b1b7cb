# ems/database/models.py

from datetime import datetime, timezone
from enum import Enum

from ems import db


def utcnow():
    # Stored naive; every timestamp column holds UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Position(Enum):
    PRESIDENT = "president"
    SECRETARY = "secretary"


class AdminRole(Enum):
    ADMIN = "admin"
    SUPERVISOR = "supervisor"


class Admin(db.Model):
    __tablename__ = 'admins'
    id = db.Column(db.Integer, primary_key=True)
    user_name = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)  # Argon2 hash
    role = db.Column(db.String(20), nullable=False, default=AdminRole.ADMIN.value)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    department = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    # Election window; only meaningful on the supervisor account
    election_start = db.Column(db.DateTime, nullable=True)
    election_end = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def is_supervisor(self):
        return self.role == AdminRole.SUPERVISOR.value

    def __repr__(self):
        return f'<Admin {self.user_name} ({self.role})>'


class Voter(db.Model):
    __tablename__ = 'voters'
    id = db.Column(db.Integer, primary_key=True)
    index = db.Column(db.String(32), unique=True, nullable=False)  # roll index
    password_hash = db.Column(db.String(200), nullable=False)
    has_voted = db.Column(db.Boolean, nullable=False, default=False)
    voted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<Voter {self.index} voted={self.has_voted}>'


class Candidate(db.Model):
    __tablename__ = 'candidates'
    __table_args__ = (
        db.UniqueConstraint('first_name', 'last_name', 'position', name='uq_candidate_name_position'),
        db.CheckConstraint('vote_count >= 0', name='ck_candidate_vote_count_non_negative'),
    )
    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    department = db.Column(db.String(100), nullable=True)
    position = db.Column(db.String(20), nullable=False, index=True)
    vote_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'

    def __repr__(self):
        return f'<Candidate {self.full_name} for {self.position}: {self.vote_count}>'
