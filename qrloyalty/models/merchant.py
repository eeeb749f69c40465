"""
Merchant model for the multi-tenant service.
"""
from datetime import datetime
from ..extensions import db


class Merchant(db.Model):
    """
    Shopify store using the QR loyalty service.
    Global table - shared across all merchants.
    """
    __tablename__ = 'merchants'

    id = db.Column(db.Integer, primary_key=True)
    shop_name = db.Column(db.String(255), nullable=False)

    # Shopify integration
    shopify_domain = db.Column(db.String(255), unique=True, nullable=False)
    shopify_access_token = db.Column(db.Text)  # Encrypted in production

    # Settings (JSON for flexibility)
    settings = db.Column(db.JSON, default=dict)

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    qr_codes = db.relationship('QRCode', backref='merchant', lazy='dynamic')

    def __repr__(self):
        return f'<Merchant {self.shopify_domain}>'

    @property
    def has_shopify_credentials(self) -> bool:
        return bool(self.shopify_domain and self.shopify_access_token)

    def to_dict(self):
        return {
            'id': self.id,
            'shop_name': self.shop_name,
            'shopify_domain': self.shopify_domain,
            'is_active': self.is_active
        }
