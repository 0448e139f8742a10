"""ClientDesk CLI for running the server and one-off maintenance jobs.

Usage::

    # Run the API server
    clientdesk serve --port 8000 --reload

    # List production settings that are still unset
    clientdesk check-env

    # Run the billing period rollover once
    clientdesk rollover

    # Load demo data
    clientdesk seed
"""

from __future__ import annotations

import asyncio
import sys

import click

from clientdesk.config import missing_production_settings, settings


@click.group()
def cli():
    """ClientDesk: agency CRM and client portal."""
    pass


# ── serve ─────────────────────────────────────────────────────────────


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind.")
@click.option("--port", default=8000, type=int, help="Port to listen on.")
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes.")
def serve(host: str, port: int, reload: bool):
    """Run the API server with uvicorn."""
    import uvicorn

    uvicorn.run("clientdesk.main:app", host=host, port=port, reload=reload)


# ── check-env ─────────────────────────────────────────────────────────


@cli.command("check-env")
def check_env():
    """Report production settings that are missing."""
    missing = missing_production_settings()
    click.echo(f"Environment: {settings.clientdesk_env}")
    if not missing:
        click.secho("All required production settings are present.", fg="green")
        return

    for name in missing:
        click.secho(f"  missing: {name.upper()}", fg="yellow")
    if settings.is_production:
        click.secho(
            f"Error: {len(missing)} required setting(s) missing in production.",
            fg="red",
            err=True,
        )
        sys.exit(1)


# ── rollover ──────────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--expire/--no-expire",
    default=True,
    help="Also expire hour packs and rollover records.",
)
def rollover(expire: bool):
    """Run the billing period rollover job once."""
    asyncio.run(_rollover(expire))


async def _rollover(expire: bool) -> None:
    from clientdesk.db.session import close_db
    from clientdesk.tasks.workers import run_billing_period_rollover, run_expiry_sweep

    processed = await run_billing_period_rollover()
    click.echo(f"Rolled over {processed} plan(s).")
    if expire:
        packs, records = await run_expiry_sweep()
        click.echo(f"Expired {packs} hour pack(s) and {records} rollover record(s).")
    await close_db()


# ── seed ──────────────────────────────────────────────────────────────


@cli.command()
def seed():
    """Load demo data into the database."""
    from clientdesk.seed import main as seed_main

    asyncio.run(seed_main())


# ── Entry point ───────────────────────────────────────────────────────


def main():
    cli()


if __name__ == "__main__":
    main()
