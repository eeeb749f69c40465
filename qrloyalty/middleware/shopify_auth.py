"""
Shopify Session Token Authentication Middleware.

Verifies Shopify session tokens (JWT) from the embedded admin to
authenticate merchant requests. Falls back to the X-Shop-Domain header or
shop query param for development and server-to-server calls.

Session tokens are issued by Shopify App Bridge and contain:
- iss: Shop domain (https://shop.myshopify.com/admin)
- dest: Shop domain
- aud: API key
- sub: Staff member GID
- exp: Expiration time
"""
import logging
import jwt
from functools import wraps
from typing import Optional
from flask import request, g, current_app

from ..extensions import db
from ..models.merchant import Merchant
from ..utils.errors import error_response, unauthorized, ErrorCode

logger = logging.getLogger(__name__)


def decode_session_token(token: str) -> Optional[dict]:
    """
    Decode and verify a Shopify session token.

    Returns:
        Decoded token payload or None if invalid
    """
    if not token:
        return None

    api_key = current_app.config.get('SHOPIFY_API_KEY', '')
    try:
        # Shopify session tokens are signed with the app's API secret
        return jwt.decode(
            token,
            current_app.config.get('SHOPIFY_API_SECRET', ''),
            algorithms=['HS256'],
            audience=api_key or None,
            options={
                'verify_aud': bool(api_key),
                'verify_exp': True,
            }
        )
    except jwt.ExpiredSignatureError:
        logger.info('[Auth] Session token expired')
        return None
    except jwt.InvalidAudienceError:
        logger.info('[Auth] Invalid token audience')
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f'[Auth] Invalid token: {e}')
        return None


def get_shop_from_token(payload: dict) -> Optional[str]:
    """Shop domain from the token's dest (or iss) claim."""
    for claim in ('dest', 'iss'):
        value = payload.get(claim, '')
        if value:
            return value.replace('https://', '').replace('http://', '').split('/')[0]
    return None


def get_shop_from_request() -> tuple:
    """
    Shop domain and how it was supplied.

    Priority:
    1. Session token in Authorization header
    2. shop query parameter
    3. X-Shop-Domain header
    """
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        payload = decode_session_token(auth_header.split(' ', 1)[1])
        if payload:
            shop = get_shop_from_token(payload)
            if shop:
                return shop, 'session_token'

    shop = request.args.get('shop')
    if shop:
        return shop, 'query_param'

    shop = request.headers.get('X-Shop-Domain')
    if shop:
        return shop, 'header'

    return None, None


def require_shopify_auth(f):
    """
    Decorator to require an authenticated merchant.

    Sets g.merchant, g.merchant_id, g.shop and g.auth_method.

    Usage:
        @require_shopify_auth
        def my_endpoint():
            merchant_id = g.merchant_id
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        dev_mode = current_app.config.get('SHOPIFY_AUTH_DEV_MODE', False)
        shop, authenticated_via = get_shop_from_request()

        if not shop:
            return unauthorized('Missing shop domain or session token')

        merchant = Merchant.query.filter_by(shopify_domain=shop).first()

        if not merchant:
            if not dev_mode:
                return error_response('This shop has not installed the app',
                                      ErrorCode.SHOP_NOT_FOUND, 404, log_error=False)
            merchant = Merchant(
                shop_name=shop.replace('.myshopify.com', '').title(),
                shopify_domain=shop,
                is_active=True,
            )
            db.session.add(merchant)
            db.session.commit()
            logger.info(f'[Auth] Auto-created dev merchant for {shop}')

        if not merchant.is_active:
            return error_response("This shop's access has been disabled",
                                  ErrorCode.PERMISSION_DENIED, 403, log_error=False)

        g.merchant = merchant
        g.merchant_id = merchant.id
        g.shop = shop
        g.auth_method = authenticated_via

        return f(*args, **kwargs)

    return decorated_function
