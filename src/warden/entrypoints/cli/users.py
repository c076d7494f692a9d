"""ABOUTME: CLI commands for user management operations
ABOUTME: Provides commands to list and delete users"""

import click

from warden.service_layer.exceptions import NotFoundError
from warden.service_layer.user_service import delete_user, list_users

from . import get_warden


@click.group()
def users() -> None:
    """User management commands."""
    pass


@users.command("list")
@click.pass_context
def list_all_users(ctx: click.Context) -> None:
    """List all users."""
    try:
        all_users = list_users(get_warden(ctx).new_uow())
        if not all_users:
            click.echo("No users found.")
            return

        click.echo(f"Found {len(all_users)} user(s):")
        for user in all_users:
            verified = "verified" if user.email_verified else "unverified"
            click.echo(f"  {user.id}  {user.email} ({verified})  created {user.created_at:%Y-%m-%d %H:%M}")

    except Exception as e:
        click.echo(click.style(f"✗ Error listing users: {e}", "red"))
        raise click.Abort() from e


@users.command("delete")
@click.argument("user_id")
@click.option("--confirm", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def delete_one_user(ctx: click.Context, user_id: str, confirm: bool) -> None:
    """Delete a user with their requests and TOTP credential."""
    try:
        if not confirm and not click.confirm(f"Delete user {user_id}?"):
            click.echo("Operation cancelled.")
            return

        delete_user(get_warden(ctx).new_uow(), user_id)
        click.echo(click.style(f"✓ User {user_id} deleted.", "green"))

    except NotFoundError as e:
        click.echo(click.style(f"✗ Error: {e}", "red"))
        raise click.Abort() from e
    except Exception as e:
        click.echo(click.style(f"✗ Error deleting user: {e}", "red"))
        raise click.Abort() from e
