# ems/voting/store.py

# Read helpers shared by the vote transaction, the tally and the admin
# services. All of them take the session explicitly.

from sqlalchemy import select

from ems.database.models import Admin, AdminRole, Candidate, Position
from ems.voting.eligibility import ElectionWindow


def get_supervisor(session):
    return session.execute(
        select(Admin).where(Admin.role == AdminRole.SUPERVISOR.value).order_by(Admin.id).limit(1)
    ).scalar_one_or_none()


def load_election_window(session) -> ElectionWindow:
    """The supervisor's window; unset when no supervisor exists."""
    supervisor = get_supervisor(session)
    if supervisor is None:
        return ElectionWindow()
    return ElectionWindow(start=supervisor.election_start, end=supervisor.election_end)


def candidates_by_position(session):
    """Every position mapped to its candidates, registration order."""
    grouped = {position: [] for position in Position}
    rows = session.execute(select(Candidate).order_by(Candidate.id)).scalars()
    for candidate in rows:
        try:
            grouped[Position(candidate.position)].append(candidate)
        except ValueError:
            # Position no longer offered; not part of any ballot
            continue
    return grouped
