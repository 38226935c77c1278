from studio.extensions import db
from studio.utils.timeutils import format_minutes
from sqlalchemy import and_, or_
from datetime import datetime

class BlockedSlot(db.Model):
    """Admin-imposed unavailability.

    A recurring block is stored once, as a rule repeating on ``weekday``
    between ``date`` and ``recurring_until``. Occurrences are produced on
    read by :meth:`materialize` and never written back.
    """
    __tablename__ = 'blocked_slots'

    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    start_minute = db.Column(db.Integer, nullable=False)
    end_minute = db.Column(db.Integer, nullable=False) # 1440 = midnight
    reason = db.Column(db.String(255))
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    recurring = db.Column(db.Boolean, nullable=False, default=False)
    recurring_until = db.Column(db.Date)
    weekday = db.Column(db.Integer, nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey('blocked_slots.id'))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    room = db.relationship('Room', backref=db.backref('blocked_slots', lazy=True))

    __table_args__ = (
        db.Index('ix_blocked_slots_room_date', 'room_id', 'date'),
        db.Index('ix_blocked_slots_room_weekday', 'room_id', 'recurring', 'weekday'),
        db.CheckConstraint('start_minute < end_minute', name='check_block_interval'),
    )

    @classmethod
    def covering(cls, room_id, day):
        """Query for single blocks on ``day`` and recurring rules whose window covers it."""
        return cls.query.filter(
            cls.room_id == room_id,
            or_(
                and_(cls.recurring == False, cls.date == day),
                and_(
                    cls.recurring == True,
                    cls.weekday == day.weekday(),
                    cls.date <= day,
                    cls.recurring_until >= day
                )
            )
        )

    def materialize(self, day):
        """Return the occurrence of this block on ``day`` (self for single blocks)."""
        if not self.recurring:
            return self
        return BlockedSlot(
            room_id=self.room_id,
            date=day,
            start_minute=self.start_minute,
            end_minute=self.end_minute,
            reason=self.reason,
            created_by=self.created_by,
            recurring=False,
            weekday=day.weekday(),
            parent_id=self.id
        )

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'date': self.date.isoformat(),
            'start_time': format_minutes(self.start_minute),
            'end_time': format_minutes(self.end_minute),
            'reason': self.reason,
            'created_by': self.created_by,
            'recurring': self.recurring,
            'recurring_until': self.recurring_until.isoformat() if self.recurring_until else None,
            'parent_id': self.parent_id
        }
