"""
Public scan endpoints.

GET /scan/<id> is what a printed QR code points at: it records the scan,
awards loyalty points for loyalty codes and redirects. POST /scan/<id>
records follow-up interactions from landing pages.

No authentication: scanners are anonymous.
"""
from flask import Blueprint, request, jsonify, current_app, redirect

from ..services.scan_pipeline import ScanPipeline, ScanRequest, record_interaction
from ..utils.cache import get_cache

scan_bp = Blueprint('scan', __name__)


@scan_bp.route('/<identifier>', methods=['GET'])
def scan(identifier):
    """
    Process a scan and redirect.

    Returns:
        302 to the destination, 404 if the code is unknown or inactive,
        410 if it has expired
    """
    pipeline = ScanPipeline(cache=get_cache(current_app))
    result = pipeline.process(identifier, ScanRequest.from_request(request))

    response = redirect(result.redirect_url, code=302)
    response.headers['X-QR-Code-ID'] = result.qr.id
    response.headers['X-QR-Code-Type'] = result.qr.type
    return response


@scan_bp.route('/<identifier>', methods=['POST'])
def track_interaction(identifier):
    """
    Record an interaction against a code.

    Request body:
        {"type": "click", "meta": {...}}
    """
    data = request.get_json(silent=True) or {}
    meta = data.get('meta') if isinstance(data.get('meta'), dict) else {}
    record_interaction(identifier, data.get('type', 'click'), meta)
    return jsonify({'success': True})
