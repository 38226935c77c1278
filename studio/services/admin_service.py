import logging
from datetime import timedelta
from studio.models import Booking, BlockedSlot
from studio.extensions import db
from studio.errors import InvalidRequest, SlotUnavailable, NotFound, PermissionDenied
from studio.services.availability_service import AvailabilityService, Interval
from studio.services.booking_service import BookingService
from studio.services.credential_service import CredentialService
from studio.services.locking import room_date_guard
from studio.utils.timeutils import MINUTES_PER_DAY, format_minutes, minutes_of, parse_date, parse_minutes

logger = logging.getLogger(__name__)

class AdminService:

    @staticmethod
    def require_admin(actor):
        if actor is None or not actor.is_admin:
            raise PermissionDenied("Admin privilege required")

    @staticmethod
    def _conflicting_bookings(room_id, first_day, last_day, weekday, interval):
        """Confirmed bookings overlapping ``interval`` on matching days in [first_day, last_day]."""
        candidates = Booking.query.filter(
            Booking.room_id == room_id,
            Booking.status == Booking.STATUS_CONFIRMED,
            Booking.date >= first_day,
            Booking.date <= last_day
        ).all()
        conflicts = []
        for booking in candidates:
            if weekday is not None and booking.date.weekday() != weekday:
                continue
            occupied = Interval(minutes_of(booking.start_time, booking.date),
                                minutes_of(booking.end_time, booking.date))
            if occupied.overlaps(interval):
                conflicts.append(booking)
        return conflicts

    @staticmethod
    def block_slot(room_id, date, start_time, end_time, actor, reason=None,
                   recurring=False, recurring_until=None):
        """
        Block a room. A recurring block repeats on the same weekday until
        ``recurring_until`` and is stored as a single rule.
        Blocks are refused over confirmed bookings.
        """
        AdminService.require_admin(actor)
        room = BookingService.get_room(room_id)
        day = parse_date(date)
        start_minute = parse_minutes(start_time)
        end_minute = parse_minutes(end_time)
        if not 0 <= start_minute < end_minute <= MINUTES_PER_DAY:
            raise InvalidRequest("Block end time must be after its start time.")

        until = None
        if recurring:
            if not recurring_until:
                raise InvalidRequest("Recurring blocks need an end date.")
            until = parse_date(recurring_until)
            if until < day:
                raise InvalidRequest("Recurring block ends before it starts.")

        interval = Interval(start_minute, end_minute)
        occurrences = [day]
        while recurring and occurrences[-1] + timedelta(days=7) <= until:
            occurrences.append(occurrences[-1] + timedelta(days=7))

        with room_date_guard(*[(room.id, d) for d in occurrences]):
            if recurring:
                conflicts = AdminService._conflicting_bookings(room.id, day, until, day.weekday(), interval)
            else:
                conflicts = AdminService._conflicting_bookings(room.id, day, day, None, interval)
            if conflicts:
                booked = ', '.join(f"#{b.id} ({b.date} {b.start_time:%H:%M})" for b in conflicts[:5])
                raise SlotUnavailable(f"Cannot block over confirmed bookings: {booked}")

            block = BlockedSlot(
                room_id=room.id,
                date=day,
                start_minute=start_minute,
                end_minute=end_minute,
                reason=reason,
                created_by=actor.id,
                recurring=bool(recurring),
                recurring_until=until,
                weekday=day.weekday()
            )
            db.session.add(block)
            db.session.commit()

        logger.info("Room %s blocked %s %s-%s%s by admin %s", room.id, day,
                    format_minutes(start_minute), format_minutes(end_minute),
                    f" weekly until {until}" if recurring else "", actor.id)
        return block

    @staticmethod
    def unblock_slot(block_id, actor):
        """Delete a block; deleting a recurring rule removes every occurrence."""
        AdminService.require_admin(actor)
        block = db.session.get(BlockedSlot, block_id)
        if not block:
            raise NotFound("Blocked slot not found.")
        db.session.delete(block)
        db.session.commit()
        logger.info("Blocked slot %s removed by admin %s", block_id, actor.id)

    @staticmethod
    def list_blocks(room_id, date):
        """Blocks in effect for a room on a date, recurring ones materialized."""
        return AvailabilityService.blocks_on(room_id, parse_date(date))

    @staticmethod
    def admin_edit_booking(booking_id, actor, new_date, new_start_time, new_duration_hours):
        """Edit with admin rights: the evening minimum and past-date checks are skipped."""
        AdminService.require_admin(actor)
        return BookingService.edit_booking(booking_id, actor, new_date, new_start_time,
                                           new_duration_hours, enforce_rules=False)

    @staticmethod
    def admin_cancel_booking(booking_id, actor):
        AdminService.require_admin(actor)
        return BookingService.cancel_booking(booking_id, actor)

    @staticmethod
    def configure_room_lock(room_id, lock_id, lock_name, actor):
        """Point a room at a (new) lock and move upcoming passcodes onto it."""
        AdminService.require_admin(actor)
        if not lock_id or not lock_name:
            raise InvalidRequest("Lock ID and name are required")
        room = BookingService.get_room(room_id)
        previous = room.lock_id
        room.lock_id = lock_id
        room.lock_name = lock_name
        db.session.commit()
        logger.info("Room %s lock changed from %s to %s", room.id, previous, lock_id)

        bookings = CredentialService.future_passcode_bookings(room_id=room.id)
        return room, CredentialService.bulk_resync(lock_id, bookings)

    @staticmethod
    def remove_room_lock(room_id, actor):
        """Revoke upcoming passcodes and detach the room from its lock."""
        AdminService.require_admin(actor)
        room = BookingService.get_room(room_id)
        failures = []
        for booking in CredentialService.future_passcode_bookings(room_id=room.id):
            if not CredentialService.revoke(booking):
                failures.append(booking.id)
        room.lock_id = None
        room.lock_name = None
        db.session.commit()
        return room, failures
