"""
Tests for the ``flask loyalty`` CLI commands.
"""
from qrloyalty.models import RewardTemplate
from qrloyalty.services.points_ledger import PointsLedgerService


CUSTOMER = 'anon_00000000000000aa'


class TestLoyaltyCommands:

    def test_seed_templates(self, app, sample_merchant):
        result = app.test_cli_runner().invoke(args=['loyalty', 'seed-templates', '--merchant-id', str(sample_merchant.id)])

        assert result.exit_code == 0
        assert 'Created 10 templates' in result.output
        assert RewardTemplate.query.filter_by(merchant_id=sample_merchant.id).count() == 10

    def test_unknown_merchant(self, app):
        result = app.test_cli_runner().invoke(args=['loyalty', 'seed-templates', '--merchant-id', '999'])

        assert result.exit_code != 0
        assert 'Merchant 999 not found' in result.output

    def test_provision(self, app, sample_merchant, bronze_discount_template):
        PointsLedgerService(sample_merchant.id).award(CUSTOMER, 20)

        result = app.test_cli_runner().invoke(args=[
            'loyalty', 'provision', '--merchant-id', str(sample_merchant.id), '--customer-id', CUSTOMER,
        ])

        assert result.exit_code == 0
        assert 'tier Bronze -> provisioned' in result.output
        assert 'Rewards: discount_5' in result.output

    def test_balance(self, app, sample_merchant):
        PointsLedgerService(sample_merchant.id).award(CUSTOMER, 120)

        result = app.test_cli_runner().invoke(args=[
            'loyalty', 'balance', '--merchant-id', str(sample_merchant.id), '--customer-id', CUSTOMER,
        ])

        assert '120 points, tier Silver' in result.output
        assert '180 points to Gold' in result.output
