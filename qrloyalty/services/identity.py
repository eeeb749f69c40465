"""
Anonymous customer identity.

Scanners are not logged in, so loyalty points are keyed on a hash of the
client IP and user agent. This is an approximation: customers behind one
NAT with the same browser share an id, and one customer switching
networks or devices gets a new one.
"""
import hashlib
from typing import Optional

ANON_PREFIX = 'anon_'
ANON_HASH_LENGTH = 16


def anonymous_customer_id(ip: Optional[str], user_agent: Optional[str]) -> str:
    """Deterministic ``anon_<16 hex>`` id for an (ip, user agent) pair."""
    fingerprint = f"{ip or 'unknown'}|{user_agent or ''}"
    digest = hashlib.sha256(fingerprint.encode('utf-8')).hexdigest()
    return f'{ANON_PREFIX}{digest[:ANON_HASH_LENGTH]}'


def is_anonymous(customer_id: str) -> bool:
    return bool(customer_id) and customer_id.startswith(ANON_PREFIX)


def client_ip(request) -> str:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket address."""
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr or 'unknown'


def device_type(user_agent: Optional[str]) -> str:
    if not user_agent:
        return 'unknown'
    ua = user_agent.lower()
    if any(marker in ua for marker in ('mobile', 'android', 'iphone')):
        return 'mobile'
    if 'tablet' in ua or 'ipad' in ua:
        return 'tablet'
    if any(marker in ua for marker in ('windows', 'macintosh', 'linux', 'desktop')):
        return 'desktop'
    return 'unknown'
