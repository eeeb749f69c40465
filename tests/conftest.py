"""
Shared fixtures for the QR loyalty test suite.

The app fixture keeps one application context open for the whole test, so
fixtures, service calls and test-client requests share a single session on
the in-memory database.
"""
from unittest.mock import patch

import pytest

from qrloyalty import create_app
from qrloyalty.extensions import db
from qrloyalty.models import Merchant, LoyaltyProgram, QRCode, RewardTemplate


SHOP_DOMAIN = 'test-shop.myshopify.com'


@pytest.fixture
def app():
    """Create test application."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def offline_shopify():
    """Provisioning never reaches Shopify unless a test injects a client."""
    with patch('qrloyalty.services.reward_provisioning.get_shopify_client', return_value=None) as mocked:
        yield mocked


@pytest.fixture
def sample_merchant(app):
    """Create a test merchant."""
    merchant = Merchant(
        shop_name='Test Shop',
        shopify_domain=SHOP_DOMAIN,
        shopify_access_token='shpat_test_token',
        settings={},
        is_active=True,
    )
    db.session.add(merchant)
    db.session.commit()
    return merchant


@pytest.fixture
def sample_program(app, sample_merchant):
    """Active program with the default thresholds and 10 points per scan."""
    program = LoyaltyProgram(
        merchant_id=sample_merchant.id,
        points_per_scan=10,
        tier_thresholds=[
            {'name': 'Bronze', 'min_points': 0},
            {'name': 'Silver', 'min_points': 100},
            {'name': 'Gold', 'min_points': 300},
            {'name': 'Platinum', 'min_points': 600},
        ],
        active=True,
    )
    db.session.add(program)
    db.session.commit()
    return program


@pytest.fixture
def sample_qr_code(app, sample_merchant):
    """Loyalty QR code with a slug."""
    qr = QRCode(
        merchant_id=sample_merchant.id,
        title='Store Window Loyalty',
        slug='window-loyalty',
        type='loyalty',
        destination='window',
        campaign_id='spring',
        active=True,
    )
    db.session.add(qr)
    db.session.commit()
    return qr


@pytest.fixture
def bronze_discount_template(app, sample_merchant):
    template = RewardTemplate(
        merchant_id=sample_merchant.id,
        tier='Bronze',
        reward_type='discount',
        config={'percentage': 5, 'code_prefix': 'BRONZE', 'expires_in_days': 30,
                'applies_once_per_customer': True},
        is_active=True,
    )
    db.session.add(template)
    db.session.commit()
    return template


@pytest.fixture
def auth_headers(sample_merchant):
    """Headers identifying the sample merchant's shop."""
    return {'X-Shop-Domain': SHOP_DOMAIN}
