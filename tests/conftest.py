import pytest
from datetime import datetime, timezone
from flask_jwt_extended import create_access_token

from ems import create_app, db
from ems.config import TestingConfig
from ems.database.models import Admin, AdminRole, Candidate, Voter
from ems.voting.clock import FixedClock
from ems.voting.transaction import VoteService

DAY1 = datetime(2026, 3, 2, tzinfo=timezone.utc)


def at(hour, minute=0, second=0):
    """An instant on election day (UTC)."""
    return DAY1.replace(hour=hour, minute=minute, second=second)


@pytest.fixture
def clock():
    return FixedClock(at(10))


@pytest.fixture
def app(tmp_path, clock):
    class Config(TestingConfig):
        # A file database so concurrent connections really compete
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'ems.sqlite'}"
        AUDIT_LOG_DIR = str(tmp_path / 'logs')

    app = create_app(Config, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def audit_logger(app):
    return app.extensions['ems']['audit_logger']


@pytest.fixture
def supervisor(session):
    """Supervisor account holding the window Day1 09:00 - 17:00; returns its id."""
    admin = Admin(
        user_name='supervisor',
        password_hash='not-a-real-hash',
        role=AdminRole.SUPERVISOR.value,
        election_start=at(9).replace(tzinfo=None),
        election_end=at(17).replace(tzinfo=None),
    )
    session.add(admin)
    session.commit()
    return admin.id


@pytest.fixture
def plain_admin(session):
    admin = Admin(user_name='clerk', password_hash='not-a-real-hash', role=AdminRole.ADMIN.value)
    session.add(admin)
    session.commit()
    return admin.id


@pytest.fixture
def candidates(session):
    """Two presidential (A, B) and two secretary (C, D) candidates; name -> id."""
    rows = {
        'A': Candidate(first_name='Ama', last_name='Owusu', position='president'),
        'B': Candidate(first_name='Kofi', last_name='Mensah', position='president'),
        'C': Candidate(first_name='Efua', last_name='Asante', position='secretary'),
        'D': Candidate(first_name='Yaw', last_name='Boateng', position='secretary'),
    }
    session.add_all(rows.values())
    session.commit()
    return {name: candidate.id for name, candidate in rows.items()}


@pytest.fixture
def make_voter(session):
    def make(index='VOTER001', has_voted=False):
        voter = Voter(index=index, password_hash='not-a-real-hash', has_voted=has_voted)
        session.add(voter)
        session.commit()
        return voter.id
    return make


@pytest.fixture
def voter(make_voter):
    return make_voter()


@pytest.fixture
def vote_service(session, clock, audit_logger):
    return VoteService(session, clock, audit_logger)


@pytest.fixture
def tallies(session):
    """Current committed vote_count per candidate id."""
    def read():
        session.expire_all()
        return {c.id: c.vote_count for c in session.query(Candidate).all()}
    return read


@pytest.fixture
def has_voted(session):
    def read(voter_id):
        session.expire_all()
        return session.get(Voter, voter_id).has_voted
    return read


@pytest.fixture
def auth_headers(app):
    def make(identity, role):
        token = create_access_token(identity=str(identity), additional_claims={'role': role})
        return {'Authorization': f'Bearer {token}'}
    return make
