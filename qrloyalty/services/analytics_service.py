"""
Scan analytics recording.

Writes one AnalyticsEvent per scan or follow-up interaction and bumps the
QR code's scan counter with an atomic increment.
"""
from datetime import datetime
from typing import Any, Dict
from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models.qr_code import QRCode, AnalyticsEvent, AnalyticsEventType

EVENT_TYPES = [t.value for t in AnalyticsEventType]


class AnalyticsService:
    """
    Usage:
        service = AnalyticsService(merchant_id)
        service.record_scan(qr, {'ip': '203.0.113.7', 'device': 'mobile'})
    """

    def __init__(self, merchant_id: int):
        self.merchant_id = merchant_id

    def record_scan(self, qr: QRCode, meta: Dict[str, Any]) -> AnalyticsEvent:
        """Store a scan event and increment scan_count in one commit."""
        event = AnalyticsEvent(
            qr_id=qr.id,
            type=AnalyticsEventType.SCAN.value,
            meta={**meta, 'timestamp': datetime.utcnow().isoformat()},
        )
        try:
            db.session.add(event)
            db.session.execute(
                update(QRCode)
                .where(QRCode.id == qr.id)
                .values(scan_count=QRCode.scan_count + 1)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(f'[SCAN] Analytics recorded for QR code {qr.id}')
        return event

    def record_event(self, qr: QRCode, event_type: str, meta: Dict[str, Any] = None) -> AnalyticsEvent:
        """
        Store a follow-up interaction (click, conversion, purchase).

        Unknown types are stored as clicks.
        """
        event_type = (event_type or '').lower()
        if event_type not in EVENT_TYPES:
            event_type = AnalyticsEventType.CLICK.value

        event = AnalyticsEvent(
            qr_id=qr.id,
            type=event_type,
            meta={**(meta or {}), 'timestamp': datetime.utcnow().isoformat()},
        )
        db.session.add(event)
        db.session.commit()
        return event
