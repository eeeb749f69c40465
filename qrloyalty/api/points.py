"""
Points API endpoints.

Handles:
- Balance and tier lookup for a customer
- Manual awards (which also provision tier rewards)
- Redemptions

Business errors (validation, insufficient points) propagate to the app's
QRLoyaltyError handler, which renders the standard error envelope.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..middleware.shopify_auth import require_shopify_auth
from ..models.loyalty import PointsSource
from ..services.loyalty_program import LoyaltyProgramService
from ..services.points_ledger import PointsLedgerService
from ..services.reward_provisioning import RewardProvisioningEngine
from ..utils.cache import get_cache
from ..utils.errors import bad_request, ErrorCode

points_bp = Blueprint('points', __name__)


def _ledger() -> PointsLedgerService:
    program_service = LoyaltyProgramService(g.merchant_id, cache=get_cache(current_app))
    return PointsLedgerService(g.merchant_id, program_service)


@points_bp.route('/balance', methods=['GET'])
@require_shopify_auth
def get_points_balance():
    """
    Get a customer's balance and tier standing.

    Query params:
        customer_id: Storefront or anonymous customer id (required)
    """
    customer_id = request.args.get('customer_id')
    if not customer_id:
        return bad_request('customer_id is required', ErrorCode.MISSING_FIELD)

    return jsonify(_ledger().get_balance(customer_id))


@points_bp.route('/award', methods=['POST'])
@require_shopify_auth
def award_points():
    """
    Award points and bring the customer's tier rewards up to date.

    Request body:
        {"customer_id": "...", "amount": 25, "source": "manual"}
    """
    data = request.get_json(silent=True) or {}
    customer_id = data.get('customer_id')
    if not customer_id:
        return bad_request('customer_id is required', ErrorCode.MISSING_FIELD)

    ledger = _ledger()
    balance = ledger.award(customer_id, data.get('amount'), data.get('source', PointsSource.MANUAL.value))
    info = ledger.get_balance(customer_id)

    outcome = RewardProvisioningEngine(g.merchant_id).ensure_tier_rewards(customer_id, info['tier'])

    return jsonify({
        'success': True,
        'balance': balance.to_dict(),
        **info,
        'provisioning': outcome.to_dict(),
    })


@points_bp.route('/redeem', methods=['POST'])
@require_shopify_auth
def redeem_points():
    """
    Redeem points. Responds 400 INSUFFICIENT_POINTS on a shortfall.

    Request body:
        {"customer_id": "...", "amount": 50}
    """
    data = request.get_json(silent=True) or {}
    customer_id = data.get('customer_id')
    if not customer_id:
        return bad_request('customer_id is required', ErrorCode.MISSING_FIELD)

    ledger = _ledger()
    balance = ledger.redeem(customer_id, data.get('amount'))

    return jsonify({
        'success': True,
        'balance': balance.to_dict(),
        **ledger.get_balance(customer_id),
    })
