# ems/admin/election_admin.py

# Supervisor and administrator operations around the vote: setting the
# election window, registering candidates, importing the voter roll and the
# bulk resets.

import logging
from datetime import datetime
from typing import Iterable, Mapping

from argon2 import PasswordHasher
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from ems.database.models import Admin, Candidate, Position, Voter
from ems.security.input_validator import InputValidator
from ems.voting.clock import as_utc
from ems.voting.eligibility import ElectionWindow
from ems.voting.store import candidates_by_position, load_election_window

logger = logging.getLogger(__name__)


class ElectionAdminError(Exception):
    pass


class NotSupervisorError(ElectionAdminError):
    pass


class ElectionAdminService:
    def __init__(self, session, audit_logger=None, validator=None, password_hasher=None):
        self.session = session
        self.audit_logger = audit_logger
        self.validator = validator or InputValidator()
        self.ph = password_hasher or PasswordHasher()

    def _audit(self, event_type, data, user_id=None):
        if self.audit_logger is not None:
            self.audit_logger.log_security_event(event_type, data, user_id=user_id)

    def get_election_window(self) -> ElectionWindow:
        return load_election_window(self.session)

    def set_election_window(self, admin_id, start: datetime, end: datetime) -> ElectionWindow:
        try:
            admin = self.session.get(Admin, int(admin_id))
        except (TypeError, ValueError):
            admin = None
        if admin is None or not admin.is_supervisor:
            self._audit('election_window_denied', {'admin_id': admin_id}, user_id=admin_id)
            raise NotSupervisorError("Only the supervisor can set the election date")

        start, end = as_utc(start), as_utc(end)
        if start >= end:
            raise ElectionAdminError("Election start must be before election end")

        admin.election_start = start.replace(tzinfo=None)
        admin.election_end = end.replace(tzinfo=None)
        self.session.commit()

        logger.info("Election window set to %s - %s by %s", start.isoformat(), end.isoformat(), admin.user_name)
        self._audit('election_window_set', {'start': start.isoformat(), 'end': end.isoformat()}, user_id=admin.id)
        return ElectionWindow(start=start, end=end)

    def register_candidate(self, first_name, last_name, position, department=None) -> Candidate:
        try:
            first_name = self.validator.sanitize_string(first_name, max_length=100)
            last_name = self.validator.sanitize_string(last_name, max_length=100)
            if department is not None:
                department = self.validator.sanitize_string(department, max_length=100) or None
        except ValueError as e:
            raise ElectionAdminError(str(e)) from e
        if not first_name or not last_name:
            raise ElectionAdminError("Candidate first and last name are required")

        try:
            position = position if isinstance(position, Position) else Position(str(position).strip().lower())
        except ValueError:
            raise ElectionAdminError(f"Unknown position: {position}")

        candidate = Candidate(
            first_name=first_name,
            last_name=last_name,
            department=department,
            position=position.value,
            vote_count=0,
        )
        self.session.add(candidate)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise ElectionAdminError("Sorry Candidate is already registered") from e

        logger.info("Registered candidate %s for %s", candidate.full_name, position.value)
        self._audit('candidate_registered', {'candidate_id': candidate.id, 'position': position.value})
        return candidate

    def ballot(self):
        return candidates_by_position(self.session)

    def import_voters(self, rows: Iterable[Mapping]) -> int:
        """Insert already-parsed roll rows (``index``, ``password``); all or nothing."""
        voters = []
        seen = set()
        for number, row in enumerate(rows, start=1):
            index = str(row.get('index') or row.get('INDEX') or '').strip()
            password = row.get('password')
            if not self.validator.validate_voter_index(index):
                raise ElectionAdminError(f"Row {number}: invalid voter index {index!r}")
            if not isinstance(password, str) or not password:
                raise ElectionAdminError(f"Row {number}: missing password")
            if index in seen:
                raise ElectionAdminError(f"Row {number}: duplicate voter index {index}")
            seen.add(index)
            voters.append(Voter(index=index, password_hash=self.ph.hash(password), has_voted=False))

        if not voters:
            return 0

        existing = self.session.execute(select(Voter.index).where(Voter.index.in_(seen))).scalars().all()
        if existing:
            raise ElectionAdminError(f"Voters already on the roll: {', '.join(sorted(existing))}")

        self.session.add_all(voters)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise ElectionAdminError("Voter roll changed during import, please try again") from e

        logger.info("Imported %d voters", len(voters))
        self._audit('voters_imported', {'count': len(voters)})
        return len(voters)

    def remove_all_candidates(self) -> int:
        deleted = self.session.execute(delete(Candidate)).rowcount
        self.session.commit()
        logger.info("%d candidates deleted", deleted)
        self._audit('candidates_removed', {'count': deleted})
        return deleted

    def reset_voter_roll(self) -> int:
        deleted = self.session.execute(delete(Voter)).rowcount
        self.session.commit()
        logger.info("%d voters deleted", deleted)
        self._audit('voter_roll_reset', {'count': deleted})
        return deleted
