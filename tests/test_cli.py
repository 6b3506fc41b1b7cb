import pytest

from ems.cli import create_admin
from ems.database.models import Admin, AdminRole
from ems.voting.store import get_supervisor


def test_create_supervisor_command(app, session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['create-admin', 'returning.officer', '--supervisor', '--password', 'S3cure-Pass!'])

    assert result.exit_code == 0, result.output
    assert 'Created supervisor returning.officer' in result.output
    assert get_supervisor(session).user_name == 'returning.officer'


def test_only_one_supervisor(app, supervisor):
    result = app.test_cli_runner().invoke(args=['create-admin', 'second', '--supervisor', '--password', 'x'])
    assert result.exit_code != 0
    assert 'already the supervisor' in result.output


def test_create_plain_admin(app, session):
    admin = create_admin('clerk.one', 'pw')
    assert admin.role == AdminRole.ADMIN.value
    assert session.query(Admin).count() == 1


def test_create_admin_rejects_bad_user_name(app):
    with pytest.raises(ValueError):
        create_admin('x', 'pw')


def test_init_db_command(app):
    result = app.test_cli_runner().invoke(args=['init-db'])
    assert result.exit_code == 0
    assert 'Database tables created' in result.output
