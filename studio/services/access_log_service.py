from datetime import timedelta
from flask import current_app
from studio.models import Booking, Room
from studio.extensions import get_lock_gateway
from studio.utils.timeutils import from_epoch_ms, to_epoch_ms

class AccessLogService:

    @staticmethod
    def match_entry_to_booking(unlock_time, passcode=None, lock_id=None):
        """
        Find the booking a door unlock belongs to.

        With a passcode, the booking whose passcode (or fallback access code)
        equals it and whose active window contains ``unlock_time``. Without
        one, the single booking active at that moment, if it is unambiguous.
        """
        grace = timedelta(minutes=current_app.config['LOCK_GRACE_PERIOD_MINUTES'])
        query = Booking.query.filter(
            Booking.status == Booking.STATUS_CONFIRMED,
            Booking.start_time <= unlock_time + grace,
            Booking.end_time >= unlock_time
        )
        if lock_id:
            query = query.join(Room).filter(Room.lock_id == lock_id)
        candidates = query.order_by(Booking.start_time).all()

        if passcode:
            for booking in candidates:
                if passcode in (booking.lock_passcode, booking.access_code):
                    return booking
            return None

        if len(candidates) == 1:
            return candidates[0]
        return None

    @staticmethod
    def build_access_log(lock_id, start, end):
        """Unlock records for ``lock_id`` between two datetimes, annotated with matched bookings."""
        gateway = get_lock_gateway()
        if gateway is None:
            return None

        tz_name = current_app.config['STUDIO_TIMEZONE']
        records = gateway.list_unlock_records(lock_id, to_epoch_ms(start, tz_name), to_epoch_ms(end, tz_name))

        entries = []
        matched = 0
        for record in sorted(records, key=lambda r: r.unlock_time_ms, reverse=True):
            unlock_time = from_epoch_ms(record.unlock_time_ms, tz_name)
            booking = AccessLogService.match_entry_to_booking(unlock_time, record.passcode, lock_id)
            if booking:
                matched += 1
            entries.append({
                'unlock_time': unlock_time.isoformat(),
                'method': record.method,
                'passcode': record.passcode,
                'success': record.success,
                'booking_id': booking.id if booking else None,
                'customer_name': (booking.user.name or booking.user.username) if booking else None,
                'room_name': booking.room.name if booking else None
            })

        return {
            'logs': entries,
            'total_entries': len(entries),
            'matched_entries': matched,
            'date_range': {'start': start.isoformat(), 'end': end.isoformat()}
        }
