"""Flask CLI commands (``flask --app electivepro create-super-admin``)."""
from __future__ import annotations

from typing import Any

import click
from flask.cli import with_appcontext

from electivepro.services import users_service
from electivepro.services.password_service import WeakPasswordError
from electivepro.services.users_service import UserConflictError, UserValidationError
from electivepro.startup.seed import seed_demo
from electivepro.utils.logging import get_logger

LOG = get_logger("cli")


@click.command("create-super-admin")
@click.option("--email", required=True, help="Login email of the platform super-admin.")
@click.option("--password", required=True, prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--name", "full_name", default=None, help="Display name.")
@with_appcontext
def create_super_admin_command(email: str, password: str, full_name: str | None) -> None:
    """Create the super-admin account or reset its password."""
    try:
        result = users_service.ensure_super_admin(email, password, full_name=full_name)
    except (UserValidationError, UserConflictError, WeakPasswordError) as exc:
        raise click.ClickException(str(exc)) from exc
    action = "created" if result["created"] else "updated"
    click.echo(f"Super-admin {result['user']['email']} {action}.")


@click.command("seed-demo")
@click.option("--admin-email", default="admin@demo.electivepro.net", show_default=True)
@click.option("--admin-password", default=None, help="Set directly instead of issuing an invitation.")
@with_appcontext
def seed_demo_command(admin_email: str, admin_password: str | None) -> None:
    """Create the demo institution with a catalogue and open offerings."""
    summary = seed_demo(admin_email=admin_email, admin_password=admin_password)
    if not summary["created"]:
        click.echo(f"Demo institution already exists (id={summary['institution_id']}).")
        return
    click.echo(f"Demo institution created (id={summary['institution_id']}).")
    if summary.get("invite_token"):
        click.echo(f"Admin invitation token: {summary['invite_token']}")


def register_cli(app: Any) -> None:
    if getattr(app, "_ep_cli", False):
        return
    app.cli.add_command(create_super_admin_command)
    app.cli.add_command(seed_demo_command)
    setattr(app, "_ep_cli", True)
    LOG.debug("CLI commands registered")


__all__ = ["register_cli", "create_super_admin_command", "seed_demo_command"]
