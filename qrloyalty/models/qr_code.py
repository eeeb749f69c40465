"""
QR code and scan analytics models.

Only the fields the scan pipeline needs live here; styling and
personalization data belong to the admin UI.
"""
import uuid
from datetime import datetime
from enum import Enum
from ..extensions import db


class QRCodeType(str, Enum):
    """What a QR code points at. Drives redirect building and loyalty handling."""
    PRODUCT = 'product'
    COLLECTION = 'collection'
    DISCOUNT = 'discount'
    CHECKOUT = 'checkout'
    LINK = 'link'
    VIDEO = 'video'
    LOYALTY = 'loyalty'
    CAMPAIGN = 'campaign'


class AnalyticsEventType(str, Enum):
    SCAN = 'scan'
    CLICK = 'click'
    CONVERSION = 'conversion'
    PURCHASE = 'purchase'


def _new_id() -> str:
    return uuid.uuid4().hex


class QRCode(db.Model):
    """A merchant-issued QR code."""
    __tablename__ = 'qr_codes'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchants.id'), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True)
    type = db.Column(db.String(20), nullable=False, default=QRCodeType.LINK.value)
    destination = db.Column(db.String(2048), nullable=False)
    campaign_id = db.Column(db.String(100))

    active = db.Column(db.Boolean, default=True)
    expires_at = db.Column(db.DateTime)
    scan_count = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    events = db.relationship('AnalyticsEvent', backref='qr_code', lazy='dynamic')

    __table_args__ = (
        db.Index('ix_qr_codes_merchant_type', 'merchant_id', 'type'),
    )

    def __repr__(self):
        return f'<QRCode {self.id} {self.type}>'

    def is_expired(self, now: datetime = None) -> bool:
        return bool(self.expires_at and self.expires_at < (now or datetime.utcnow()))

    def to_dict(self):
        return {
            'id': self.id,
            'merchant_id': self.merchant_id,
            'title': self.title,
            'slug': self.slug,
            'type': self.type,
            'destination': self.destination,
            'campaign_id': self.campaign_id,
            'active': self.active,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'scan_count': self.scan_count,
        }


class AnalyticsEvent(db.Model):
    """One scan or follow-up interaction against a QR code."""
    __tablename__ = 'analytics_events'

    id = db.Column(db.Integer, primary_key=True)
    qr_id = db.Column(db.String(36), db.ForeignKey('qr_codes.id'), nullable=False)
    type = db.Column(db.String(20), nullable=False, default=AnalyticsEventType.SCAN.value)
    meta = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_analytics_events_qr_created', 'qr_id', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'qr_id': self.qr_id,
            'type': self.type,
            'meta': self.meta or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
