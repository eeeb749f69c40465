"""
Tests for the tier rewards and loyalty program APIs.
"""
import json

from qrloyalty.services.points_ledger import PointsLedgerService
from qrloyalty.services.reward_provisioning import RewardProvisioningEngine


CUSTOMER = 'anon_fedcba9876543210'


def _json(client, method, url, headers, body=None):
    return getattr(client, method)(url, headers=headers, data=json.dumps(body or {}),
                                   content_type='application/json')


class TestTemplateEndpoints:
    """Tests for /api/rewards/templates."""

    def test_create_and_list(self, client, auth_headers):
        response = _json(client, 'post', '/api/rewards/templates', auth_headers, {
            'tier': 'Gold', 'reward_type': 'discount', 'config': {'percentage': 15},
        })
        assert response.status_code == 201
        assert response.get_json()['config']['percentage'] == 15

        listing = client.get('/api/rewards/templates?tier=Gold', headers=auth_headers).get_json()
        assert listing['total'] == 1

    def test_create_invalid_lists_fields(self, client, auth_headers):
        response = _json(client, 'post', '/api/rewards/templates', auth_headers, {
            'tier': 'Gold', 'reward_type': 'discount',
            'config': {'percentage': 0, 'expires_in_days': 0},
        })

        assert response.status_code == 400
        fields = {d['field'] for d in response.get_json()['error']['details']}
        assert fields == {'config.percentage', 'config.expires_in_days'}

    def test_create_wrong_typed_config(self, client, auth_headers):
        response = _json(client, 'post', '/api/rewards/templates', auth_headers, {
            'tier': 'Gold', 'reward_type': 'exclusive_product', 'config': {'product_ids': 7},
        })

        assert response.status_code == 400
        assert response.get_json()['error']['details'][0]['field'] == 'config.product_ids'

    def test_empty_body(self, client, auth_headers):
        response = client.post('/api/rewards/templates', headers=auth_headers)
        assert response.status_code == 400

    def test_seed_defaults(self, client, auth_headers):
        response = client.post('/api/rewards/templates/defaults', headers=auth_headers)

        assert response.status_code == 201
        assert len(response.get_json()['created']) == 10

    def test_get_update_delete(self, client, auth_headers, bronze_discount_template):
        url = f'/api/rewards/templates/{bronze_discount_template.id}'

        assert client.get(url, headers=auth_headers).get_json()['tier'] == 'Bronze'

        updated = _json(client, 'put', url, auth_headers, {'config': {'percentage': 7}})
        assert updated.status_code == 200
        assert updated.get_json()['config']['percentage'] == 7

        assert client.delete(url, headers=auth_headers).get_json() == {'success': True}
        assert client.get(url, headers=auth_headers).status_code == 404


class TestCustomerRewards:
    """Tests for GET /api/rewards/customer/<id>."""

    def test_before_any_rewards(self, client, auth_headers):
        data = client.get(f'/api/rewards/customer/{CUSTOMER}', headers=auth_headers).get_json()

        assert data['points'] == 0
        assert data['tier'] == 'Bronze'
        assert data['active_rewards'] is None
        assert data['next_tier_rewards'] == []

    def test_with_rewards_and_preview(self, client, auth_headers, sample_merchant):
        client.post('/api/rewards/templates/defaults', headers=auth_headers)
        PointsLedgerService(sample_merchant.id).award(CUSTOMER, 150)
        RewardProvisioningEngine(sample_merchant.id).ensure_tier_rewards(CUSTOMER, 'Silver')

        data = client.get(f'/api/rewards/customer/{CUSTOMER}', headers=auth_headers).get_json()

        assert data['tier'] == 'Silver'
        assert data['next_tier'] == 'Gold'
        assert data['points_to_next_tier'] == 150
        assert data['active_rewards']['active_rewards'] == ['discount_10', 'free_shipping']
        assert data['active_rewards']['discount_code'].startswith('SILVERSILVER10_')
        assert [r['type'] for r in data['next_tier_rewards']] == [
            'discount', 'free_shipping', 'exclusive_product',
        ]


class TestUseDiscountCode:

    def test_mark_used_twice(self, client, auth_headers, sample_merchant, bronze_discount_template):
        code = RewardProvisioningEngine(sample_merchant.id).ensure_tier_rewards(CUSTOMER, 'Bronze').primary_code
        url = f'/api/rewards/codes/{code}/use'

        first = _json(client, 'post', url, auth_headers, {'customer_id': CUSTOMER}).get_json()
        second = _json(client, 'post', url, auth_headers, {'customer_id': CUSTOMER}).get_json()

        assert first == {'success': True, 'code': code, 'already_used': False}
        assert second['already_used'] is True

    def test_unknown_code(self, client, auth_headers):
        response = _json(client, 'post', '/api/rewards/codes/NOPE/use', auth_headers, {'customer_id': CUSTOMER})
        assert response.status_code == 404


class TestLoyaltyProgramEndpoints:
    """Tests for /api/loyalty/program."""

    def test_get_creates_default(self, client, auth_headers):
        data = client.get('/api/loyalty/program', headers=auth_headers).get_json()

        assert data['points_per_scan'] == 10
        assert data['tier_thresholds'] == []
        assert [t['name'] for t in data['effective_thresholds']] == ['Bronze', 'Silver', 'Gold', 'Platinum']

    def test_update_thresholds(self, client, auth_headers, sample_program):
        response = _json(client, 'put', '/api/loyalty/program', auth_headers, {
            'points_per_scan': 5,
            'tier_thresholds': [{'name': 'Fan', 'min_points': 0}, {'name': 'Superfan', 'min_points': 50}],
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data['points_per_scan'] == 5
        assert data['effective_thresholds'] == [
            {'name': 'Fan', 'min_points': 0},
            {'name': 'Superfan', 'min_points': 50},
        ]

    def test_update_invalid(self, client, auth_headers, sample_program):
        response = _json(client, 'put', '/api/loyalty/program', auth_headers, {'points_per_scan': -1})

        assert response.status_code == 400
        assert response.get_json()['error']['details'][0]['field'] == 'points_per_scan'
