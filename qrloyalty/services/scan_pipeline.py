"""
Scan Event Pipeline.

Handles one QR scan end to end:

    resolve -> analytics -> loyalty -> rewards -> redirect

Resolution failures (unknown or expired code) abort the scan. The
analytics, loyalty and rewards stages are side effects; with the default
'log' policy their failures are logged and recorded on the result, and the
customer is still redirected. Set a stage to 'raise' in SCAN_STAGE_POLICY
to escalate instead.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode
from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models.qr_code import QRCode, QRCodeType
from ..models.loyalty import PointsSource
from ..utils.exceptions import ExpiredError, QRCodeNotFoundError
from .analytics_service import AnalyticsService
from .identity import anonymous_customer_id, client_ip, device_type
from .loyalty_program import LoyaltyProgramService
from .points_ledger import PointsLedgerService
from .reward_provisioning import RewardProvisioningEngine
from .tier_resolver import resolve_tier

QR_TYPES = [t.value for t in QRCodeType]

POLICY_LOG = 'log'
POLICY_RAISE = 'raise'


@dataclass
class ScanRequest:
    """Client details captured from the scan request."""
    ip: str = 'unknown'
    user_agent: str = ''
    referer: str = ''
    country: str = 'unknown'
    host: str = 'localhost'
    scheme: str = 'http'

    @classmethod
    def from_request(cls, request) -> 'ScanRequest':
        headers = request.headers
        return cls(
            ip=client_ip(request),
            user_agent=headers.get('User-Agent', ''),
            referer=headers.get('Referer', ''),
            country=headers.get('CF-IPCountry') or headers.get('X-Country') or 'unknown',
            host=headers.get('Host') or request.host or 'localhost',
            scheme=headers.get('X-Forwarded-Proto') or request.scheme or 'http',
        )

    @property
    def base_url(self) -> str:
        return f'{self.scheme}://{self.host}'

    @property
    def customer_id(self) -> str:
        return anonymous_customer_id(self.ip, self.user_agent)


@dataclass
class StageOutcome:
    stage: str
    ok: bool
    detail: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'stage': self.stage, 'ok': self.ok, 'detail': self.detail, 'error': self.error}


@dataclass
class ScanResult:
    redirect_url: str
    qr: QRCode
    outcomes: List[StageOutcome] = field(default_factory=list)
    customer_id: Optional[str] = None

    def outcome(self, stage: str) -> Optional[StageOutcome]:
        for outcome in self.outcomes:
            if outcome.stage == stage:
                return outcome
        return None


# ==================== Resolution ====================

def _single(query) -> Optional[QRCode]:
    """
    The match if the query yields exactly one active, non-expired code.

    When the only active match is expired it is still returned, so the
    scan reports it as expired rather than unknown.
    """
    active = query.filter(QRCode.active.is_(True))
    live = active.filter(or_(
        QRCode.expires_at.is_(None),
        QRCode.expires_at >= datetime.utcnow(),
    )).limit(2).all()
    if live:
        return live[0] if len(live) == 1 else None
    matches = active.limit(2).all()
    return matches[0] if len(matches) == 1 else None


def _strategies(qr_type: str, handle: str) -> List[Callable]:
    typed = QRCode.query.filter(QRCode.type == qr_type)
    strategies = [
        lambda: typed.filter(QRCode.title.contains(handle, autoescape=True)),
        lambda: typed.filter(QRCode.destination.contains(handle, autoescape=True)),
    ]
    if qr_type == QRCodeType.LOYALTY.value:
        strategies.append(lambda: typed.filter(QRCode.destination.contains(f'/loyalty/{handle}', autoescape=True)))
    elif qr_type == QRCodeType.CAMPAIGN.value:
        strategies.append(lambda: typed.filter(QRCode.campaign_id == handle))
        strategies.append(lambda: typed.filter(QRCode.destination == handle))
    elif qr_type == QRCodeType.PRODUCT.value:
        strategies.append(lambda: typed.filter(QRCode.destination.contains(f'/products/{handle}', autoescape=True)))
    elif qr_type == QRCodeType.COLLECTION.value:
        strategies.append(lambda: typed.filter(QRCode.destination.contains(f'/collections/{handle}', autoescape=True)))
    return strategies


def resolve_qr_code(identifier: str) -> QRCode:
    """
    Find the active QR code for a scan identifier.

    Tries id or slug first. Identifiers shaped ``{type}-{handle}`` (e.g.
    ``product-blue-shirt``) then go through the type's lookup strategies in
    order; a strategy only counts when it matches exactly one code.

    Raises:
        QRCodeNotFoundError: nothing matched
        ExpiredError: the matching code is past expires_at
    """
    qr = QRCode.query.filter(
        or_(QRCode.id == identifier, QRCode.slug == identifier),
        QRCode.active.is_(True),
    ).first()

    if qr is None and '-' in identifier:
        qr_type, handle = identifier.split('-', 1)
        if qr_type in QR_TYPES and handle:
            for strategy in _strategies(qr_type, handle):
                qr = _single(strategy())
                if qr is not None:
                    break

    if qr is None:
        current_app.logger.info(f'[SCAN] No QR code found for {identifier}')
        raise QRCodeNotFoundError(identifier)

    if qr.is_expired():
        current_app.logger.info(f'[SCAN] QR code {qr.id} has expired')
        raise ExpiredError('QR code', identifier, qr.expires_at)

    return qr


# ==================== Redirects ====================

def _is_absolute(url: str) -> bool:
    return url.startswith('http://') or url.startswith('https://')


def _shop_url(qr: QRCode, path: str) -> str:
    shop = qr.merchant.shopify_domain if qr.merchant else ''
    return f'https://{shop}{path}'


REDIRECT_BUILDERS = {
    QRCodeType.PRODUCT.value: lambda qr, req: qr.destination if _is_absolute(qr.destination)
    else _shop_url(qr, f'/products/{qr.destination}'),
    QRCodeType.COLLECTION.value: lambda qr, req: qr.destination if _is_absolute(qr.destination)
    else _shop_url(qr, f'/collections/{qr.destination}'),
    QRCodeType.DISCOUNT.value: lambda qr, req: qr.destination if _is_absolute(qr.destination)
    else _shop_url(qr, f'/discount/{qr.destination}'),
    QRCodeType.CHECKOUT.value: lambda qr, req: qr.destination if _is_absolute(qr.destination)
    else _shop_url(qr, f'/cart/{qr.destination}'),
    QRCodeType.LOYALTY.value: lambda qr, req: f'{req.base_url}/loyalty/{qr.destination}',
    QRCodeType.CAMPAIGN.value: lambda qr, req: f'{req.base_url}/campaign/{qr.campaign_id or qr.destination}',
    QRCodeType.VIDEO.value: lambda qr, req: qr.destination if _is_absolute(qr.destination)
    else f'https://youtube.com/watch?v={qr.destination}',
}


def _with_params(url: str, params: Dict[str, str]) -> str:
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def build_redirect_url(qr: QRCode, scan_request: ScanRequest, customer_id: Optional[str] = None) -> str:
    """Destination for a scan, with tracking parameters set."""
    builder = REDIRECT_BUILDERS.get(qr.type)
    if builder:
        url = builder(qr, scan_request)
    else:
        url = qr.destination if _is_absolute(qr.destination) else f'https://{qr.destination}'

    params = {}
    if qr.type in (QRCodeType.LOYALTY.value, QRCodeType.CAMPAIGN.value):
        params['utm_campaign'] = qr.campaign_id or 'direct'
        if customer_id:
            params['customer_id'] = customer_id
    params.update({
        'utm_source': 'qr_code',
        'utm_medium': 'qr_scan',
        'qr_id': qr.id,
    })
    return _with_params(url, params)


# ==================== Pipeline ====================

class ScanPipeline:
    """
    Usage:
        pipeline = ScanPipeline(cache=get_cache(current_app))
        result = pipeline.process(qr_identifier, ScanRequest.from_request(request))
        return redirect(result.redirect_url)
    """

    def __init__(self, cache=None, policy: Dict[str, str] = None):
        self.cache = cache
        self.policy = policy if policy is not None else current_app.config.get('SCAN_STAGE_POLICY', {})

    def _policy_for(self, stage: str) -> str:
        return self.policy.get(stage, POLICY_LOG)

    def _run_stage(self, stage: str, fn: Callable[[], Dict[str, Any]]) -> StageOutcome:
        try:
            return StageOutcome(stage, True, fn() or {})
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f'[SCAN] {stage} stage failed: {e}')
            if self._policy_for(stage) == POLICY_RAISE:
                raise
            return StageOutcome(stage, False, error=str(e))

    def process(self, identifier: str, scan_request: ScanRequest) -> ScanResult:
        current_app.logger.info(f'[SCAN] Attempting to scan QR code: {identifier}')
        qr = resolve_qr_code(identifier)
        result = ScanResult(redirect_url='', qr=qr)
        result.outcomes.append(StageOutcome('resolve', True, {'qr_id': qr.id, 'type': qr.type}))

        result.outcomes.append(self._run_stage('analytics', lambda: self._record_analytics(qr, scan_request)))

        if qr.type == QRCodeType.LOYALTY.value:
            result.customer_id = scan_request.customer_id
            self._loyalty_stages(qr, result)

        result.redirect_url = build_redirect_url(qr, scan_request, result.customer_id)
        result.outcomes.append(StageOutcome('redirect', True, {'url': result.redirect_url}))
        current_app.logger.info(f'[SCAN] Final redirect URL: {result.redirect_url}')
        return result

    def _record_analytics(self, qr: QRCode, scan_request: ScanRequest) -> Dict[str, Any]:
        meta = {
            'ip': scan_request.ip,
            'user_agent': scan_request.user_agent,
            'referer': scan_request.referer,
            'country': scan_request.country,
            'device': device_type(scan_request.user_agent),
        }
        event = AnalyticsService(qr.merchant_id).record_scan(qr, meta)
        return {'event_id': event.id, 'device': meta['device']}

    def _loyalty_stages(self, qr: QRCode, result: ScanResult) -> None:
        program_service = LoyaltyProgramService(qr.merchant_id, cache=self.cache)
        customer_id = result.customer_id
        award = {}

        def award_points():
            program = program_service.get_program()
            if not program or not program.active:
                current_app.logger.info(f'[SCAN] No active loyalty program for merchant {qr.merchant_id}')
                return {'skipped': 'no_active_program'}
            ledger = PointsLedgerService(qr.merchant_id, program_service)
            balance = ledger.award(customer_id, program.points_per_scan, PointsSource.SCAN.value)
            tier = resolve_tier(balance.points, program_service.get_thresholds())
            award.update(points=balance.points, tier=tier)
            return {'customer_id': customer_id, 'awarded': program.points_per_scan, **award}

        loyalty = self._run_stage('loyalty', award_points)
        result.outcomes.append(loyalty)
        if not loyalty.ok or 'tier' not in award:
            return

        def provision_rewards():
            engine = RewardProvisioningEngine(qr.merchant_id)
            return engine.ensure_tier_rewards(customer_id, award['tier']).to_dict()

        result.outcomes.append(self._run_stage('rewards', provision_rewards))


def record_interaction(identifier: str, event_type: str, meta: Dict[str, Any] = None):
    """
    Record a follow-up event (click, conversion) against an active code.

    Raises:
        QRCodeNotFoundError: no active code with this id or slug
    """
    qr = QRCode.query.filter(
        or_(QRCode.id == identifier, QRCode.slug == identifier),
        QRCode.active.is_(True),
    ).first()
    if qr is None:
        raise QRCodeNotFoundError(identifier)
    return AnalyticsService(qr.merchant_id).record_event(qr, event_type, meta)
