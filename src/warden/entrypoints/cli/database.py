"""ABOUTME: CLI commands for database management operations
ABOUTME: Provides commands to create, reset and clean up the database"""

import os

import click

from warden.adapters.orm import metadata
from warden.entrypoints.scheduler import delete_expired_requests

from . import get_warden


@click.group()
def database() -> None:
    """Database management commands."""
    pass


@database.command("init")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create any missing tables."""
    try:
        # bootstrapping creates the schema
        get_warden(ctx)
        click.echo(click.style("✓ Database initialised.", "green"))
    except Exception as e:
        click.echo(click.style(f"✗ Error initialising database: {e}", "red"))
        raise click.Abort() from e


@database.command("reset")
@click.pass_context
def reset_db(ctx: click.Context) -> None:
    """Reset the database (drop all tables and recreate)."""
    try:
        if os.environ.get("ALLOW_RESET_DB", "") != "DANGEROUS":
            click.echo("Resetting the database is a dangerous operation. In order to enable it set the")
            click.echo("environment variable ALLOW_RESET_DB to DANGEROUS.")
            return

        click.echo(click.style("⚠️  WARNING: This will destroy ALL data in the database!", "red"))
        delete_confirm = click.prompt("Type 'delete everything' if you want to continue.")
        if delete_confirm != "delete everything":
            click.echo("Operation cancelled.")
            return

        engine = get_warden(ctx).session_factory.kw["bind"]
        metadata.drop_all(engine)
        metadata.create_all(engine)

        click.echo(click.style("✓ Database reset successfully.", "green"))

    except Exception as e:
        click.echo(click.style(f"✗ Error resetting database: {e}", "red"))
        raise click.Abort() from e


@database.command("cleanup")
@click.pass_context
def cleanup_db(ctx: click.Context) -> None:
    """Delete expired email verification and password reset requests."""
    try:
        email_count, reset_count = delete_expired_requests(get_warden(ctx))
        click.echo(click.style("✓ Expired requests deleted:", "green"))
        click.echo(f"  Email verification requests: {email_count}")
        click.echo(f"  Password reset requests: {reset_count}")
    except Exception as e:
        click.echo(click.style(f"✗ Error cleaning up database: {e}", "red"))
        raise click.Abort() from e
