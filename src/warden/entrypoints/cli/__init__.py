"""ABOUTME: Main CLI entry point using Click for warden administration
ABOUTME: Provides the serve command plus subcommands for users and database maintenance"""

import base64
import secrets

import click

from warden import bootstrap
from warden.adapters.database import start_mappers
from warden.config import get_config


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """warden authentication server administration CLI."""
    # Ensure context object exists
    ctx.ensure_object(dict)

    # Initialize configuration and database mappers
    config = get_config()
    ctx.obj["config"] = config
    start_mappers()


def get_warden(ctx: click.Context) -> bootstrap.Warden:
    """Wire up the database once per invocation. Tests pass their own session factory in ctx.obj."""
    if "warden" not in ctx.obj:
        config = ctx.obj["config"]
        ctx.obj["warden"] = bootstrap.bootstrap(
            start_orm=False,
            session_factory=ctx.obj.get("session_factory"),
            database_url=config.SQLALCHEMY_DATABASE_URI,
            check_pwned=config.CHECK_PWNED_PASSWORDS,
        )
    warden_instance: bootstrap.Warden = ctx.obj["warden"]
    return warden_instance


@cli.command()
def version() -> None:
    """Show warden version."""
    from warden.entrypoints.blueprints.health import get_warden_version

    click.echo(f"warden {get_warden_version()}")


@cli.command("generate-secret")
@click.option("--totp-key", is_flag=True, help="Generate a TOTP_ENCRYPTION_KEY instead of a WARDEN_SECRET")
def generate_secret(totp_key: bool) -> None:
    """Print a random value suitable for WARDEN_SECRET or TOTP_ENCRYPTION_KEY."""
    if totp_key:
        click.echo(base64.b64encode(secrets.token_bytes(32)).decode("ascii"))
    else:
        click.echo(secrets.token_urlsafe(32))


@cli.command()
@click.option("--host", default="127.0.0.1", help="Interface to listen on")
@click.option("--port", type=int, help="Port to listen on (default: PORT or 4000)")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int | None) -> None:
    """Run the API server together with the maintenance scheduler."""
    from warden.entrypoints.flask_app import create_app
    from warden.entrypoints.scheduler import MaintenanceScheduler

    config = ctx.obj["config"]
    app = create_app(config.ENV_NAME, app_warden=get_warden(ctx))
    scheduler = MaintenanceScheduler(app.extensions["warden"], config.MAINTENANCE)
    scheduler.start()
    try:
        click.echo(click.style(f"Listening on {host}:{port or config.PORT}", "green"))
        app.run(host=host, port=port or config.PORT, debug=config.DEBUG, use_reloader=False)
    finally:
        scheduler.stop()


# Import subcommands to register them
from .database import database  # noqa: E402
from .users import users  # noqa: E402

cli.add_command(database)
cli.add_command(users)


if __name__ == "__main__":
    cli()
