from collections import namedtuple
from flask import current_app
from studio.models import Booking, BlockedSlot
from studio.utils.timeutils import format_minutes, minutes_of


class Interval(namedtuple('Interval', ['start', 'end'])):
    """Half-open [start, end) interval in minutes from midnight."""
    __slots__ = ()

    def overlaps(self, other):
        return self.start < other.end and other.start < self.end

    def contains(self, other):
        return self.start <= other.start and other.end <= self.end

    def to_dict(self):
        return {'start': format_minutes(self.start), 'end': format_minutes(self.end)}


class AvailabilityService:

    @staticmethod
    def business_hours(room, day):
        """Opening window for ``room`` on ``day``, or None when the room is closed."""
        if room.is_closed_on(day):
            return None
        start = current_app.config['BUSINESS_HOURS_START'] * 60
        end = current_app.config['BUSINESS_HOURS_END'] * 60
        return Interval(start, end)

    @staticmethod
    def confirmed_bookings(room_id, day, exclude_booking_id=None):
        query = Booking.query.filter(
            Booking.room_id == room_id,
            Booking.date == day,
            Booking.status == Booking.STATUS_CONFIRMED
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start_time).all()

    @staticmethod
    def blocks_on(room_id, day):
        """Single blocks on ``day`` plus materialized occurrences of recurring rules."""
        rules = BlockedSlot.covering(room_id, day).order_by(BlockedSlot.start_minute).all()
        return [rule.materialize(day) for rule in rules]

    @staticmethod
    def busy_intervals(room, day, exclude_booking_id=None):
        """Sorted, merged union of confirmed-booking and blocked intervals."""
        intervals = [
            Interval(minutes_of(b.start_time, day), minutes_of(b.end_time, day))
            for b in AvailabilityService.confirmed_bookings(room.id, day, exclude_booking_id)
        ]
        intervals.extend(
            Interval(block.start_minute, block.end_minute)
            for block in AvailabilityService.blocks_on(room.id, day)
        )
        intervals.sort()

        merged = []
        for interval in intervals:
            if merged and interval.start <= merged[-1].end:
                last = merged[-1]
                merged[-1] = Interval(last.start, max(last.end, interval.end))
            else:
                merged.append(interval)
        return merged

    @staticmethod
    def free_windows(room, day, exclude_booking_id=None):
        """Ordered, disjoint free intervals inside business hours."""
        hours = AvailabilityService.business_hours(room, day)
        if hours is None:
            return []

        windows = []
        cursor = hours.start
        for busy in AvailabilityService.busy_intervals(room, day, exclude_booking_id):
            if busy.end <= cursor:
                continue
            if busy.start >= hours.end:
                break
            if busy.start > cursor:
                windows.append(Interval(cursor, busy.start))
            cursor = max(cursor, busy.end)

        if cursor < hours.end:
            windows.append(Interval(cursor, hours.end))
        return windows

    @staticmethod
    def candidate(start_minute, duration_hours):
        return Interval(start_minute, start_minute + duration_hours * 60)

    @staticmethod
    def within_business_hours(room, day, start_minute, duration_hours):
        hours = AvailabilityService.business_hours(room, day)
        if hours is None:
            return False
        return hours.contains(AvailabilityService.candidate(start_minute, duration_hours))

    @staticmethod
    def is_window_free(room, day, start_minute, duration_hours, exclude_booking_id=None):
        """True iff [start, start + duration) is inside business hours and touches no busy interval."""
        if not AvailabilityService.within_business_hours(room, day, start_minute, duration_hours):
            return False
        wanted = AvailabilityService.candidate(start_minute, duration_hours)
        return not any(
            wanted.overlaps(busy)
            for busy in AvailabilityService.busy_intervals(room, day, exclude_booking_id)
        )
