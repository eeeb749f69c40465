"""
Tests for the scan event pipeline.

Covers:
- QR code resolution by id, slug and typed composite identifiers
- Redirect URL building per code type
- Stage outcomes and the log/raise failure policy
- Loyalty scans awarding points and provisioning tier rewards
"""
from datetime import datetime, timedelta
from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

import pytest

from qrloyalty.extensions import db
from qrloyalty.models import AnalyticsEvent, QRCode
from qrloyalty.services.points_ledger import PointsLedgerService
from qrloyalty.services.reward_templates import RewardTemplateStore
from qrloyalty.services.scan_pipeline import (
    ScanPipeline,
    ScanRequest,
    build_redirect_url,
    record_interaction,
    resolve_qr_code,
)
from qrloyalty.utils.exceptions import ExpiredError, QRCodeNotFoundError


def _scan_request(**overrides):
    values = {'ip': '203.0.113.7', 'user_agent': 'Mozilla/5.0 (iPhone)', 'host': 'qr.example.com',
              'scheme': 'https'}
    values.update(overrides)
    return ScanRequest(**values)


def _add_qr(merchant, **fields):
    qr = QRCode(merchant_id=merchant.id, **fields)
    db.session.add(qr)
    db.session.commit()
    return qr


class TestResolveQRCode:
    """Tests for resolve_qr_code."""

    def test_by_id(self, app, sample_qr_code):
        assert resolve_qr_code(sample_qr_code.id).id == sample_qr_code.id

    def test_by_slug(self, app, sample_qr_code):
        assert resolve_qr_code('window-loyalty').id == sample_qr_code.id

    def test_unknown(self, app, sample_qr_code):
        with pytest.raises(QRCodeNotFoundError):
            resolve_qr_code('does-not-exist')

    def test_inactive_is_not_found(self, app, sample_qr_code):
        sample_qr_code.active = False
        db.session.commit()

        with pytest.raises(QRCodeNotFoundError):
            resolve_qr_code(sample_qr_code.id)

    def test_expired(self, app, sample_qr_code):
        sample_qr_code.expires_at = datetime.utcnow() - timedelta(hours=1)
        db.session.commit()

        with pytest.raises(ExpiredError):
            resolve_qr_code('window-loyalty')

    def test_typed_identifier_by_destination(self, app, sample_merchant):
        qr = _add_qr(sample_merchant, title='Shirt tag', type='product', destination='blue-shirt')

        assert resolve_qr_code('product-blue-shirt').id == qr.id

    def test_typed_identifier_skips_expired_sibling(self, app, sample_merchant):
        live = _add_qr(sample_merchant, title='Shirt tag', type='product', destination='blue-shirt')
        _add_qr(sample_merchant, title='Old shirt tag', type='product', destination='blue-shirt-2023',
                expires_at=datetime.utcnow() - timedelta(days=1))

        assert resolve_qr_code('product-blue-shirt').id == live.id

    def test_typed_identifier_lone_expired_match(self, app, sample_merchant):
        _add_qr(sample_merchant, title='Old shirt tag', type='product', destination='blue-shirt-2023',
                expires_at=datetime.utcnow() - timedelta(days=1))

        with pytest.raises(ExpiredError):
            resolve_qr_code('product-blue-shirt')

    def test_typed_identifier_ambiguous(self, app, sample_merchant):
        _add_qr(sample_merchant, title='Shirt tag', type='product', destination='blue-shirt')
        _add_qr(sample_merchant, title='Shirt tag XL', type='product', destination='blue-shirt-xl')

        with pytest.raises(QRCodeNotFoundError):
            resolve_qr_code('product-blue-shirt')

    def test_typed_identifier_is_scoped_to_type(self, app, sample_merchant):
        _add_qr(sample_merchant, title='Shirt video', type='video', destination='blue-shirt')

        with pytest.raises(QRCodeNotFoundError):
            resolve_qr_code('product-blue-shirt')

    def test_ambiguous_strategy_is_skipped(self, app, sample_merchant):
        """Two titles match the handle, so resolution falls through to the destination."""
        _add_qr(sample_merchant, title='summer sale A', type='campaign', destination='https://a.example.com')
        _add_qr(sample_merchant, title='summer sale B', type='campaign', destination='https://b.example.com')
        wanted = _add_qr(sample_merchant, title='Flyer', type='campaign', destination='x', campaign_id='summer')

        assert resolve_qr_code('campaign-summer').id == wanted.id

    def test_ambiguous_everywhere_is_not_found(self, app, sample_merchant):
        _add_qr(sample_merchant, title='Poster', type='product', destination='mug-red')
        _add_qr(sample_merchant, title='Sticker', type='product', destination='mug-blue')

        with pytest.raises(QRCodeNotFoundError):
            resolve_qr_code('product-mug')


class TestBuildRedirectUrl:

    def _params(self, url):
        return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}

    def test_product_handle_goes_to_shop(self, app, sample_merchant):
        qr = _add_qr(sample_merchant, title='Shirt', type='product', destination='blue-shirt')

        url = build_redirect_url(qr, _scan_request())

        assert url.startswith('https://test-shop.myshopify.com/products/blue-shirt?')
        assert self._params(url) == {'utm_source': 'qr_code', 'utm_medium': 'qr_scan', 'qr_id': qr.id}

    def test_absolute_destination_keeps_its_query(self, app, sample_merchant):
        qr = _add_qr(sample_merchant, title='Link', type='link', destination='https://example.com/page?ref=print')

        params = self._params(build_redirect_url(qr, _scan_request()))

        assert params['ref'] == 'print'
        assert params['utm_source'] == 'qr_code'

    def test_bare_domain_link(self, app, sample_merchant):
        qr = _add_qr(sample_merchant, title='Link', type='link', destination='example.com')
        assert build_redirect_url(qr, _scan_request()).startswith('https://example.com?')

    def test_loyalty_landing_page(self, app, sample_qr_code):
        url = build_redirect_url(sample_qr_code, _scan_request(), customer_id='anon_abc')

        assert url.startswith('https://qr.example.com/loyalty/window?')
        params = self._params(url)
        assert params['customer_id'] == 'anon_abc'
        assert params['utm_campaign'] == 'spring'

    def test_video_id(self, app, sample_merchant):
        qr = _add_qr(sample_merchant, title='Demo', type='video', destination='dQw4w9WgXcQ')
        assert build_redirect_url(qr, _scan_request()).startswith('https://youtube.com/watch?v=dQw4w9WgXcQ&')


class TestScanPipeline:
    """Tests for ScanPipeline.process."""

    def test_non_loyalty_scan_records_analytics_only(self, app, sample_merchant):
        qr = _add_qr(sample_merchant, title='Mug', type='product', destination='mug')

        result = ScanPipeline().process(qr.id, _scan_request())

        assert [o.stage for o in result.outcomes] == ['resolve', 'analytics', 'redirect']
        assert result.customer_id is None
        assert AnalyticsEvent.query.filter_by(qr_id=qr.id, type='scan').count() == 1
        assert db.session.get(QRCode, qr.id).scan_count == 1

    def test_loyalty_scan_awards_points(self, app, sample_merchant, sample_program, sample_qr_code):
        scan_request = _scan_request()

        result = ScanPipeline().process('window-loyalty', scan_request)

        loyalty = result.outcome('loyalty')
        assert loyalty.ok
        assert loyalty.detail['awarded'] == 10
        assert loyalty.detail['tier'] == 'Bronze'
        assert result.customer_id == scan_request.customer_id
        assert PointsLedgerService(sample_merchant.id).get_points(result.customer_id) == 10
        assert 'customer_id=' in result.redirect_url

    def test_loyalty_scan_provisions_rewards_once(self, app, sample_merchant, sample_program, sample_qr_code):
        RewardTemplateStore(sample_merchant.id).create_default_templates()
        pipeline = ScanPipeline()

        first = pipeline.process('window-loyalty', _scan_request())
        second = pipeline.process('window-loyalty', _scan_request())

        assert first.outcome('rewards').detail['status'] == 'provisioned'
        assert first.outcome('rewards').detail['tokens'] == ['discount_5']
        assert second.outcome('rewards').detail['status'] == 'unchanged'

    def test_reaching_silver_provisions_silver(self, app, sample_merchant, sample_program, sample_qr_code):
        RewardTemplateStore(sample_merchant.id).create_default_templates()
        scan_request = _scan_request()
        PointsLedgerService(sample_merchant.id).award(scan_request.customer_id, 95)

        result = ScanPipeline().process('window-loyalty', scan_request)

        assert result.outcome('loyalty').detail['points'] == 105
        assert result.outcome('rewards').detail['tier'] == 'Silver'

    def test_inactive_program_skips_loyalty(self, app, sample_merchant, sample_program, sample_qr_code):
        sample_program.active = False
        db.session.commit()

        result = ScanPipeline().process('window-loyalty', _scan_request())

        assert result.outcome('loyalty').detail == {'skipped': 'no_active_program'}
        assert result.outcome('rewards') is None
        assert PointsLedgerService(sample_merchant.id).get_points(result.customer_id) == 0

    def test_analytics_failure_is_logged_and_scan_continues(self, app, sample_merchant, sample_program,
                                                           sample_qr_code):
        with patch('qrloyalty.services.scan_pipeline.AnalyticsService.record_scan',
                   side_effect=RuntimeError('disk full')):
            result = ScanPipeline().process('window-loyalty', _scan_request())

        analytics = result.outcome('analytics')
        assert analytics.ok is False
        assert analytics.error == 'disk full'
        assert result.outcome('loyalty').ok
        assert result.redirect_url

    def test_program_lookup_failure_still_redirects(self, app, sample_merchant, sample_program, sample_qr_code):
        with patch('qrloyalty.services.scan_pipeline.LoyaltyProgramService.get_program',
                   side_effect=RuntimeError('connection reset')):
            result = ScanPipeline().process('window-loyalty', _scan_request())

        loyalty = result.outcome('loyalty')
        assert loyalty.ok is False
        assert loyalty.error == 'connection reset'
        assert result.outcome('rewards') is None
        assert '/loyalty/window?' in result.redirect_url

    def test_raise_policy_escalates(self, app, sample_merchant, sample_program, sample_qr_code):
        pipeline = ScanPipeline(policy={'analytics': 'raise'})

        with patch('qrloyalty.services.scan_pipeline.AnalyticsService.record_scan',
                   side_effect=RuntimeError('disk full')):
            with pytest.raises(RuntimeError):
                pipeline.process('window-loyalty', _scan_request())

    def test_rewards_failure_keeps_points(self, app, sample_merchant, sample_program, sample_qr_code):
        with patch('qrloyalty.services.scan_pipeline.RewardProvisioningEngine.ensure_tier_rewards',
                   side_effect=RuntimeError('lock table missing')):
            result = ScanPipeline().process('window-loyalty', _scan_request())

        assert result.outcome('rewards').ok is False
        assert PointsLedgerService(sample_merchant.id).get_points(result.customer_id) == 10

    def test_unknown_code_raises(self, app, sample_merchant):
        with pytest.raises(QRCodeNotFoundError):
            ScanPipeline().process('nothing-here', _scan_request())


class TestRecordInteraction:

    def test_click(self, app, sample_qr_code):
        event = record_interaction('window-loyalty', 'click', {'button': 'shop-now'})
        assert event.type == 'click'
        assert event.meta['button'] == 'shop-now'

    def test_unknown_type_stored_as_click(self, app, sample_qr_code):
        assert record_interaction(sample_qr_code.id, 'hover').type == 'click'

    def test_unknown_code(self, app):
        with pytest.raises(QRCodeNotFoundError):
            record_interaction('missing', 'click')
