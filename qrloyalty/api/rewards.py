"""
Tier rewards API endpoints.

Handles:
- Reward template CRUD and default seeding (admin)
- A customer's active rewards plus a preview of the next tier
- Marking a discount code as used
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..middleware.shopify_auth import require_shopify_auth
from ..services.loyalty_program import LoyaltyProgramService
from ..services.points_ledger import PointsLedgerService
from ..services.reward_provisioning import RewardProvisioningEngine
from ..services.reward_templates import RewardTemplateStore
from ..utils.cache import get_cache
from ..utils.errors import bad_request, ErrorCode

rewards_bp = Blueprint('rewards', __name__)


# ==================== Templates ====================

@rewards_bp.route('/templates', methods=['GET'])
@require_shopify_auth
def list_templates():
    """
    List reward templates.

    Query params:
        tier: Only this tier
        reward_type: Only this reward type
        active: 'true' to hide inactive templates
    """
    templates = RewardTemplateStore(g.merchant_id).list_templates(
        tier=request.args.get('tier'),
        reward_type=request.args.get('reward_type'),
        active_only=request.args.get('active') == 'true',
    )
    return jsonify({
        'templates': [t.to_dict() for t in templates],
        'total': len(templates),
    })


@rewards_bp.route('/templates', methods=['POST'])
@require_shopify_auth
def create_template():
    """
    Create a template (or update the one with the same tier and type).

    Request body:
        {"tier": "Gold", "reward_type": "discount", "config": {"percentage": 15}}
    """
    data = request.get_json(silent=True)
    if not data:
        return bad_request('Request body is required')

    template = RewardTemplateStore(g.merchant_id).create_template(data)
    return jsonify(template.to_dict()), 201


@rewards_bp.route('/templates/defaults', methods=['POST'])
@require_shopify_auth
def seed_default_templates():
    """Seed the default Bronze through Platinum reward set."""
    created = RewardTemplateStore(g.merchant_id).create_default_templates()
    return jsonify({
        'success': True,
        'created': [t.to_dict() for t in created],
    }), 201


@rewards_bp.route('/templates/<int:template_id>', methods=['GET'])
@require_shopify_auth
def get_template(template_id):
    return jsonify(RewardTemplateStore(g.merchant_id).get_template(template_id).to_dict())


@rewards_bp.route('/templates/<int:template_id>', methods=['PUT'])
@require_shopify_auth
def update_template(template_id):
    data = request.get_json(silent=True)
    if not data:
        return bad_request('Request body is required')

    template = RewardTemplateStore(g.merchant_id).update_template(template_id, data)
    return jsonify(template.to_dict())


@rewards_bp.route('/templates/<int:template_id>', methods=['DELETE'])
@require_shopify_auth
def delete_template(template_id):
    """Delete a template. Rewards already provisioned from it stay in place."""
    RewardTemplateStore(g.merchant_id).delete_template(template_id)
    return jsonify({'success': True})


# ==================== Customer rewards ====================

@rewards_bp.route('/customer/<customer_id>', methods=['GET'])
@require_shopify_auth
def get_customer_rewards(customer_id):
    """Active rewards, tier standing and what the next tier unlocks."""
    program_service = LoyaltyProgramService(g.merchant_id, cache=get_cache(current_app))
    balance = PointsLedgerService(g.merchant_id, program_service).get_balance(customer_id)

    engine = RewardProvisioningEngine(g.merchant_id)
    return jsonify({
        'customer_id': customer_id,
        'points': balance['points'],
        'tier': balance['tier'],
        'next_tier': balance['next_tier'],
        'points_to_next_tier': balance['points_to_next_tier'],
        'active_rewards': engine.get_customer_active_rewards(customer_id),
        'next_tier_rewards': engine.next_tier_rewards(balance['next_tier']),
    })


@rewards_bp.route('/codes/<code>/use', methods=['POST'])
@require_shopify_auth
def use_discount_code(code):
    """
    Mark a customer's discount code as used.

    Request body:
        {"customer_id": "..."}
    """
    data = request.get_json(silent=True) or {}
    customer_id = data.get('customer_id')
    if not customer_id:
        return bad_request('customer_id is required', ErrorCode.MISSING_FIELD)

    marked = RewardProvisioningEngine(g.merchant_id).mark_discount_code_used(customer_id, code)
    return jsonify({
        'success': True,
        'code': code,
        'already_used': not marked,
    })
