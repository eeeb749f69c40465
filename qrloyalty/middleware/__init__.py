"""
Middleware package for the loyalty service.
"""
from .shopify_auth import require_shopify_auth, get_shop_from_request

__all__ = ['require_shopify_auth', 'get_shop_from_request']
