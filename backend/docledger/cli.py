# backend/docledger/cli.py
# Flask CLI commands for docledger
#
# Document store:
# - python -m flask docstore init
#   Create the documents table (use `flask db upgrade` where migrations are managed).
# - python -m flask docstore stats --tenant acme
#   Count documents per kind, optionally for one tenant.
#
# Stock:
# - python -m flask stock verify --tenant acme
#   Check every stock ledger of a tenant against its invariants. Exits 1 on offenders.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services import stock_service
from .services.document_store import get_store


@click.group('docstore')
def docstore_group():
    """Document store commands."""


@docstore_group.command('init')
@with_appcontext
def init_docstore():
    """Create tables for all registered models."""
    db.create_all()
    click.echo("PASS documents table ready")


@docstore_group.command('stats')
@click.option('--tenant', 'tenant_id', default=None, help='Limit counts to one tenant')
@with_appcontext
def docstore_stats(tenant_id):
    """Print document counts per kind."""
    counts = get_store().count_by_kind(tenant_id)
    if not counts:
        click.echo("No documents found.")
        return

    scope = tenant_id or "all tenants"
    click.echo(f"Documents ({scope}):")
    for kind in sorted(counts):
        click.echo(f"  {kind:<16} {counts[kind]:>8}")
    click.echo(f"  {'total':<16} {sum(counts.values()):>8}")


@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('verify')
@click.option('--tenant', 'tenant_id', required=True, help='Tenant to verify')
@click.option('--tolerance', type=int, default=None,
              help='Allowed minor-unit drift (default: STOCK_VALUE_TOLERANCE)')
@with_appcontext
def verify_stock_cli(tenant_id, tolerance):
    """
    Verify quantityAvailable == quantityOnHand - quantityReserved and
    totalValue ~= averageCost * quantityOnHand for every stock document.
    """
    offenders = stock_service.verify_stock(tenant_id, tolerance=tolerance)
    if not offenders:
        click.echo(f"PASS stock ledgers for {tenant_id} are consistent")
        return

    current_app.logger.warning("stock verify found %d offending ledgers in %s", len(offenders), tenant_id)
    for offender in offenders:
        click.echo(f"FAIL {offender['id']}")
        for problem in offender["problems"]:
            click.echo(f"     - {problem}")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(docstore_group)
    app.cli.add_command(stock_group)
