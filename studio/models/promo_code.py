from studio.extensions import db
from datetime import datetime

class PromoCode(db.Model):
    __tablename__ = 'promo_codes'

    TYPE_PERCENTAGE = 'percentage'
    TYPE_FIXED = 'fixed'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True, nullable=False) # stored upper-case
    description = db.Column(db.String(255))
    discount_type = db.Column(db.String(20), nullable=False) # percentage, fixed
    discount_value = db.Column(db.Numeric(10, 2), nullable=False)
    max_discount_amount = db.Column(db.Numeric(10, 2)) # cap for percentage codes
    min_booking_amount = db.Column(db.Numeric(10, 2))

    valid_from = db.Column(db.DateTime)
    valid_to = db.Column(db.DateTime)
    usage_limit = db.Column(db.Integer) # None = unlimited
    current_usage = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('discount_value >= 0', name='check_discount_positive'),
        db.CheckConstraint("discount_type IN ('percentage', 'fixed')", name='check_discount_type'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'description': self.description,
            'discount_type': self.discount_type,
            'discount_value': str(self.discount_value),
            'max_discount_amount': str(self.max_discount_amount) if self.max_discount_amount is not None else None,
            'min_booking_amount': str(self.min_booking_amount) if self.min_booking_amount is not None else None,
            'valid_from': self.valid_from.isoformat() if self.valid_from else None,
            'valid_to': self.valid_to.isoformat() if self.valid_to else None,
            'usage_limit': self.usage_limit,
            'current_usage': self.current_usage,
            'is_active': self.is_active
        }
