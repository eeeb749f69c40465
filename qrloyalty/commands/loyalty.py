"""
CLI Commands for loyalty administration.

Usage:
    flask loyalty seed-templates --merchant-id 1
    flask loyalty provision --merchant-id 1 --customer-id anon_1a2b3c4d5e6f7a8b
    flask loyalty balance --merchant-id 1 --customer-id anon_1a2b3c4d5e6f7a8b
"""
import click
from flask.cli import with_appcontext

from ..extensions import db
from ..models.merchant import Merchant
from ..services.points_ledger import PointsLedgerService
from ..services.reward_provisioning import RewardProvisioningEngine
from ..services.reward_templates import RewardTemplateStore


@click.group('loyalty')
def loyalty_cli():
    """Loyalty points and tier reward commands."""
    pass


def _require_merchant(merchant_id: int) -> Merchant:
    merchant = db.session.get(Merchant, merchant_id)
    if not merchant:
        raise click.ClickException(f"Merchant {merchant_id} not found")
    return merchant


@loyalty_cli.command('seed-templates')
@click.option('--merchant-id', type=int, required=True, help='Merchant to seed')
@with_appcontext
def seed_templates(merchant_id):
    """Create the default Bronze through Platinum reward templates."""
    _require_merchant(merchant_id)
    created = RewardTemplateStore(merchant_id).create_default_templates()

    click.echo(f"Created {len(created)} templates")
    for template in created:
        click.echo(f"  {template.tier}: {template.reward_type}")


@loyalty_cli.command('provision')
@click.option('--merchant-id', type=int, required=True)
@click.option('--customer-id', required=True)
@with_appcontext
def provision(merchant_id, customer_id):
    """
    Bring a customer's tier rewards up to date with their balance.

    Useful after editing templates or thresholds.
    """
    _require_merchant(merchant_id)
    info = PointsLedgerService(merchant_id).get_balance(customer_id)
    outcome = RewardProvisioningEngine(merchant_id).ensure_tier_rewards(customer_id, info['tier'])

    click.echo(f"{customer_id}: {info['points']} points, tier {info['tier']} -> {outcome.status}")
    if outcome.tokens:
        click.echo(f"  Rewards: {', '.join(outcome.tokens)}")
    if outcome.primary_code:
        click.echo(f"  Code: {outcome.primary_code}")
    for failure in outcome.failures:
        click.echo(f"  Failed {failure['reward_type']}: {failure['error']}")


@loyalty_cli.command('balance')
@click.option('--merchant-id', type=int, required=True)
@click.option('--customer-id', required=True)
@with_appcontext
def balance(merchant_id, customer_id):
    """Show a customer's points and tier standing."""
    _require_merchant(merchant_id)
    info = PointsLedgerService(merchant_id).get_balance(customer_id)

    click.echo(f"{customer_id}: {info['points']} points, tier {info['tier']}")
    if info['next_tier']:
        click.echo(f"  {info['points_to_next_tier']} points to {info['next_tier']}")
