from studio.extensions import db
from datetime import datetime

class Booking(db.Model):
    __tablename__ = 'bookings'

    STATUS_CONFIRMED = 'confirmed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_COMPLETED = 'completed' # derived at read time, never stored

    CREDENTIAL_NONE = 'none'
    CREDENTIAL_PENDING = 'pending'
    CREDENTIAL_ACTIVE = 'active'
    CREDENTIAL_REVOKED = 'revoked'
    CREDENTIAL_EXPIRED = 'expired' # derived

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=False)

    date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False, index=True)
    duration_hours = db.Column(db.Integer, nullable=False)
    total_price = db.Column(db.Numeric(10, 2), nullable=False)
    # total_price = original_price - discount_amount; original_price already has the volume discount
    original_price = db.Column(db.Numeric(10, 2))
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    promo_code_id = db.Column(db.Integer, db.ForeignKey('promo_codes.id'))
    status = db.Column(db.String(20), nullable=False, default='confirmed') # confirmed, cancelled

    number_of_people = db.Column(db.Integer, default=1)
    contact_phone = db.Column(db.String(32))
    special_requests = db.Column(db.Text)
    payment_reference = db.Column(db.String(128))

    # Fallback credential, always present
    access_code = db.Column(db.String(12), nullable=False)
    access_code_active = db.Column(db.Boolean, nullable=False, default=True)

    # Smart-lock credential, present only when the lock cloud accepted it
    lock_id = db.Column(db.String(64), index=True)
    lock_passcode = db.Column(db.String(12), index=True)
    lock_passcode_id = db.Column(db.String(64))
    credential_status = db.Column(db.String(20), nullable=False, default='none')
    credential_error = db.Column(db.String(255))
    # Credentials from an earlier window the lock has not yet accepted a delete for
    stale_credentials = db.Column(db.JSON(none_as_null=True))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', backref='bookings', lazy=True)
    promo_code = db.relationship('PromoCode', lazy=True)

    __table_args__ = (db.Index('ix_bookings_room_date_status', 'room_id', 'date', 'status'),)

    @property
    def is_confirmed(self):
        return self.status == self.STATUS_CONFIRMED

    def effective_status(self, now=None):
        now = now or datetime.now()
        if self.status == self.STATUS_CONFIRMED and now >= self.end_time:
            return self.STATUS_COMPLETED
        return self.status

    def effective_credential_status(self, now=None):
        now = now or datetime.now()
        if self.credential_status == self.CREDENTIAL_ACTIVE and now >= self.end_time:
            return self.CREDENTIAL_EXPIRED
        return self.credential_status

    def lock_access_message(self):
        if self.lock_passcode:
            return 'smart-lock passcode active'
        if self.status == self.STATUS_CONFIRMED and (self.lock_id or self.room.lock_id):
            return 'access code available, smart-lock pending'
        return 'access code only'

    def to_dict(self, now=None):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'room_id': self.room_id,
            'date': self.date.isoformat(),
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': '24:00' if self.end_time.date() > self.date else self.end_time.strftime('%H:%M'),
            'duration_hours': self.duration_hours,
            'total_price': str(self.total_price),
            'original_price': str(self.original_price) if self.original_price is not None else None,
            'discount_amount': str(self.discount_amount) if self.discount_amount is not None else None,
            'promo_code': self.promo_code.code if self.promo_code else None,
            'status': self.effective_status(now),
            'number_of_people': self.number_of_people,
            'contact_phone': self.contact_phone,
            'special_requests': self.special_requests,
            'access_code': self.access_code,
            'access_code_active': self.access_code_active,
            'lock_passcode': self.lock_passcode,
            'credential_status': self.effective_credential_status(now),
            'lock_access': self.lock_access_message(),
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
