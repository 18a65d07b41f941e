# Overview: Flask CLI commands for quotation bootstrap and inspection.

# backend/quoteflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask quotations <command> [options]
#
# - python -m flask quotations init-db
#   Create all tables (use "flask db upgrade" for migrated deployments).
# - python -m flask quotations summary
#   Print counts, value, per-status breakdown and conversion rate.
# - python -m flask quotations expiring --days 7
#   List sent/approved quotations lapsing within the window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .errors import QuotationError
from .money import format_cents
from .services import statistics_service
from .services.quotation_service import list_expiring_quotations


@click.group('quotations')
def quotations_group():
    """Quotation bootstrap and inspection commands."""


@quotations_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for the configured database."""
    db.create_all()
    click.echo("PASS Database tables created")


@quotations_group.command('summary')
@with_appcontext
def summary():
    """Print quotation statistics."""
    stats = statistics_service.quotation_summary()
    click.echo(f"Quotations:      {stats['total_count']}")
    click.echo(f"Total value:     {stats['total_value']}")
    click.echo(f"Average value:   {stats['average_value']}")
    click.echo(f"Conversion rate: {stats['conversion_rate'] * 100:.1f}%")
    click.echo("By status:")
    for status, count in stats["by_status"].items():
        click.echo(f"  {status:<10} {count}")
    click.echo(f"  {'expired':<10} {stats['expired_count']} (derived)")


@quotations_group.command('expiring')
@click.option('--days', type=int, default=None, help='Window in days (default EXPIRING_SOON_DAYS)')
@with_appcontext
def expiring(days):
    """List sent/approved quotations about to lapse."""
    days = days if days is not None else current_app.config["EXPIRING_SOON_DAYS"]
    try:
        rows = list_expiring_quotations(days)
    except QuotationError as e:
        raise click.BadParameter(e.message, param_hint="--days")

    if not rows:
        click.echo(f"No quotations expire within {days} days")
        return
    for q in rows:
        click.echo(
            f"{q.quotation_number}  {q.status:<9} {q.valid_until:%Y-%m-%d}  "
            f"{q.currency} {format_cents(q.total_cents):>12}  {q.customer_name}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(quotations_group)
