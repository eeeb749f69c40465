"""
Tests for typed reward template configuration.
"""
from datetime import datetime

import pytest

from qrloyalty.models.reward_config import (
    DiscountConfig,
    EarlyAccessConfig,
    ExclusiveProductConfig,
    FreeShippingConfig,
    config_to_dict,
    default_config,
    parse_config,
)


class TestParseConfig:

    def test_missing_keys_fall_back_to_defaults(self):
        config = parse_config('discount', {'percentage': 15})
        assert isinstance(config, DiscountConfig)
        assert config.percentage == 15
        assert config.code_prefix == 'LOYALTY'
        assert config.expires_in_days == 30

    def test_camel_case_keys(self):
        config = parse_config('free_shipping', {'minimumOrder': 40, 'expiresInDays': 7})
        assert config.minimum_order == 40
        assert config.expires_in_days == 7

    def test_foreign_keys_are_dropped(self):
        config = parse_config('exclusive_product', {'percentage': 10, 'productIds': [1, 2]})
        assert isinstance(config, ExclusiveProductConfig)
        assert config.product_ids == ['1', '2']
        assert 'percentage' not in config_to_dict(config)

    def test_unknown_type(self):
        with pytest.raises(KeyError):
            parse_config('cashback', {})

    def test_early_access_window_parsed_as_naive_utc(self):
        config = parse_config('early_access', {
            'access_window': {'start': '2026-01-01T10:00:00+02:00', 'end': '2026-01-08T00:00:00Z'},
        })
        assert config.access_window.start == datetime(2026, 1, 1, 8, 0)
        assert config.access_window.end == datetime(2026, 1, 8, 0, 0)

    def test_early_access_without_window_gets_default_window(self):
        config = parse_config('early_access', {'expires_in_days': 10})
        assert config.access_window.start < config.access_window.end
        assert config.expires_in_days == 10


class TestValidate:

    def test_percentage_zero_rejected(self):
        errors = DiscountConfig(percentage=0).validate()
        assert [e['field'] for e in errors] == ['percentage']

    def test_percentage_over_100_rejected(self):
        assert DiscountConfig(percentage=101).validate()

    def test_fractional_percentage_allowed(self):
        assert DiscountConfig(percentage=12.5).validate() == []

    def test_negative_minimum_order(self):
        errors = FreeShippingConfig(minimum_order=-1).validate()
        assert errors[0]['field'] == 'minimum_order'

    def test_expiry_must_be_positive_integer(self):
        errors = DiscountConfig(expires_in_days=0).validate()
        assert errors[0]['field'] == 'expires_in_days'

    def test_reports_every_problem(self):
        errors = DiscountConfig(percentage=0, code_prefix=' ', expires_in_days=-3).validate()
        assert {e['field'] for e in errors} == {'percentage', 'code_prefix', 'expires_in_days'}

    def test_wrong_typed_zones_reported(self):
        config = parse_config('free_shipping', {'zones': 5})
        assert config.validate() == [{'field': 'zones', 'message': 'zones must be a list of strings'}]

    def test_wrong_typed_product_ids_reported(self):
        config = parse_config('exclusive_product', {'product_ids': 7, 'collection_ids': 'summer'})
        assert {e['field'] for e in config.validate()} == {'product_ids', 'collection_ids'}

    def test_non_dict_access_window_reported(self):
        config = parse_config('early_access', {'access_window': 'next week'})
        assert [e['field'] for e in config.validate()] == ['access_window']

    def test_early_access_window_order(self):
        config = parse_config('early_access', {
            'access_window': {'start': '2026-02-01T00:00:00', 'end': '2026-01-01T00:00:00'},
        })
        assert config.validate()[0]['field'] == 'access_window'

    def test_defaults_are_valid(self):
        for reward_type in ('discount', 'free_shipping', 'exclusive_product', 'early_access'):
            assert default_config(reward_type).validate() == []


class TestSerialization:

    def test_early_access_serializes_iso_window(self):
        config = EarlyAccessConfig.default()
        data = config_to_dict(config)
        assert set(data) == {'access_window', 'expires_in_days'}
        assert data['access_window']['start'] == config.access_window.start.isoformat()
