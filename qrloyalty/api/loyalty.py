"""
Loyalty program settings API.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..middleware.shopify_auth import require_shopify_auth
from ..services.loyalty_program import LoyaltyProgramService
from ..utils.cache import get_cache
from ..utils.errors import bad_request

loyalty_bp = Blueprint('loyalty', __name__)


@loyalty_bp.route('/program', methods=['GET'])
@require_shopify_auth
def get_program():
    """Program settings plus the threshold table currently in effect."""
    service = LoyaltyProgramService(g.merchant_id, cache=get_cache(current_app))
    program = service.get_or_create_program()
    return jsonify({
        **program.to_dict(),
        'effective_thresholds': [t.to_dict() for t in service.get_thresholds()],
    })


@loyalty_bp.route('/program', methods=['PUT'])
@require_shopify_auth
def update_program():
    """
    Update program settings.

    Request body (all optional):
        {"name": "...", "points_per_scan": 15, "active": true,
         "tier_thresholds": [{"name": "Bronze", "min_points": 0}, ...]}
    """
    data = request.get_json(silent=True)
    if not data:
        return bad_request('Request body is required')

    service = LoyaltyProgramService(g.merchant_id, cache=get_cache(current_app))
    program = service.update_program(data)
    return jsonify({
        **program.to_dict(),
        'effective_thresholds': [t.to_dict() for t in service.get_thresholds()],
    })
