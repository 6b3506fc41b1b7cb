# ems/cli.py

import click
from argon2 import PasswordHasher
from sqlalchemy import select

from ems import db
from ems.database.models import Admin, AdminRole
from ems.security.input_validator import InputValidator


def create_admin(user_name, password, role=AdminRole.ADMIN, **details):
    if not InputValidator().validate_user_name(user_name):
        raise ValueError(f"Invalid user name: {user_name!r}")
    if role is AdminRole.SUPERVISOR:
        existing = db.session.execute(
            select(Admin).where(Admin.role == AdminRole.SUPERVISOR.value)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValueError(f"{existing.user_name} is already the supervisor")
    admin = Admin(user_name=user_name, password_hash=PasswordHasher().hash(password), role=role.value, **details)
    db.session.add(admin)
    db.session.commit()
    return admin


def register_commands(app):
    @app.cli.command('init-db')
    def init_db():
        """Create all tables (development without migrations)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command('create-admin')
    @click.argument('user_name')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option('--supervisor', is_flag=True, help='Make this account the election supervisor.')
    def create_admin_command(user_name, password, supervisor):
        """Create an administrator account."""
        role = AdminRole.SUPERVISOR if supervisor else AdminRole.ADMIN
        try:
            admin = create_admin(user_name, password, role=role)
        except ValueError as e:
            raise click.ClickException(str(e))
        click.echo(f"Created {admin.role} {admin.user_name} (id {admin.id}).")
