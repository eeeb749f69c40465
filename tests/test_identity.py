"""
Tests for anonymous customer identity helpers.
"""
from unittest.mock import MagicMock

from qrloyalty.services.identity import (
    anonymous_customer_id,
    client_ip,
    device_type,
    is_anonymous,
)


class TestAnonymousCustomerId:

    def test_deterministic(self):
        first = anonymous_customer_id('203.0.113.7', 'Mozilla/5.0 (iPhone)')
        second = anonymous_customer_id('203.0.113.7', 'Mozilla/5.0 (iPhone)')
        assert first == second

    def test_shape(self):
        customer_id = anonymous_customer_id('203.0.113.7', 'UA')
        assert customer_id.startswith('anon_')
        assert len(customer_id) == len('anon_') + 16
        assert is_anonymous(customer_id)

    def test_different_user_agent_gives_different_id(self):
        assert anonymous_customer_id('203.0.113.7', 'A') != anonymous_customer_id('203.0.113.7', 'B')

    def test_storefront_ids_are_not_anonymous(self):
        assert not is_anonymous('gid://shopify/Customer/42')
        assert not is_anonymous('')


class TestClientIp:

    def _request(self, headers, remote_addr='10.0.0.1'):
        request = MagicMock()
        request.headers = headers
        request.remote_addr = remote_addr
        return request

    def test_first_forwarded_hop_wins(self):
        request = self._request({'X-Forwarded-For': '198.51.100.2, 10.0.0.5', 'X-Real-IP': '10.0.0.9'})
        assert client_ip(request) == '198.51.100.2'

    def test_real_ip_header(self):
        assert client_ip(self._request({'X-Real-IP': '198.51.100.3'})) == '198.51.100.3'

    def test_socket_address_fallback(self):
        assert client_ip(self._request({})) == '10.0.0.1'


class TestDeviceType:

    def test_mobile(self):
        assert device_type('Mozilla/5.0 (iPhone; CPU iPhone OS 17_0)') == 'mobile'

    def test_tablet(self):
        assert device_type('Mozilla/5.0 (iPad; CPU OS 17_0)') == 'tablet'

    def test_desktop(self):
        assert device_type('Mozilla/5.0 (Windows NT 10.0; Win64; x64)') == 'desktop'

    def test_unknown(self):
        assert device_type(None) == 'unknown'
        assert device_type('curl/8.4') == 'unknown'
