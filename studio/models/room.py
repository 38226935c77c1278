from studio.extensions import db
from studio.services.pricing_service import Flat, TimeOfDay

class Room(db.Model):
    __tablename__ = 'rooms'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.Text)
    equipment = db.Column(db.JSON, default=list) # e.g. ["drum kit", "PA system"]
    max_capacity = db.Column(db.Integer, nullable=False, default=6)
    is_active = db.Column(db.Boolean, default=True)

    # Pricing: 'flat' uses hourly_rate, 'time_of_day' uses the day/evening pair
    pricing_mode = db.Column(db.String(20), nullable=False, default='flat')
    hourly_rate = db.Column(db.Numeric(10, 2))
    day_rate = db.Column(db.Numeric(10, 2))
    evening_rate = db.Column(db.Numeric(10, 2))
    day_start_hour = db.Column(db.Integer, default=9)
    day_end_hour = db.Column(db.Integer, default=17)

    # Evening sessions shorter than this are refused (None = no rule)
    evening_min_hours = db.Column(db.Integer, nullable=True)
    closed_weekdays = db.Column(db.JSON, default=list) # Monday = 0 ... Sunday = 6

    lock_id = db.Column(db.String(64), nullable=True)
    lock_name = db.Column(db.String(128), nullable=True)

    bookings = db.relationship('Booking', backref='room', lazy=True)

    __table_args__ = (db.CheckConstraint('max_capacity > 0', name='check_capacity_positive'),)

    @property
    def pricing_policy(self):
        if self.pricing_mode == 'time_of_day':
            return TimeOfDay(
                day_rate=self.day_rate,
                evening_rate=self.evening_rate,
                day_start=self.day_start_hour,
                day_end=self.day_end_hour
            )
        if self.pricing_mode == 'flat':
            return Flat(rate=self.hourly_rate)
        raise ValueError(f"Unknown pricing mode {self.pricing_mode!r} for room {self.id}")

    def is_closed_on(self, day):
        return day.weekday() in (self.closed_weekdays or [])

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'equipment': self.equipment,
            'max_capacity': self.max_capacity,
            'is_active': self.is_active,
            'pricing': self.pricing_policy.to_dict(),
            'evening_min_hours': self.evening_min_hours,
            'closed_weekdays': self.closed_weekdays or [],
            'lock_id': self.lock_id,
            'lock_name': self.lock_name
        }
