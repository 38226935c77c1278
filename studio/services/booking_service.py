import logging
import secrets
from decimal import Decimal
from flask import current_app
from studio.models import Room, Booking
from studio.extensions import db
from studio.errors import InvalidRequest, SlotUnavailable, NotFound, PermissionDenied
from studio.services.availability_service import AvailabilityService
from studio.services.credential_service import CredentialService
from studio.services.locking import room_date_guard
from studio.services.pricing_service import PricingService
from studio.services.promo_service import PromoService
from studio.utils.timeutils import at_minutes, format_minutes, parse_date, parse_minutes, studio_now

logger = logging.getLogger(__name__)

class BookingService:

    @staticmethod
    def generate_access_code():
        length = current_app.config['ACCESS_CODE_LENGTH']
        return ''.join(secrets.choice('0123456789') for _ in range(length))

    @staticmethod
    def get_room(room_id):
        room = db.session.get(Room, room_id) if room_id is not None else None
        if not room or not room.is_active:
            raise NotFound("Room not found.")
        return room

    @staticmethod
    def get_booking(booking_id, actor):
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFound("Booking not found.")
        BookingService.check_actor(booking, actor)
        return booking

    @staticmethod
    def check_actor(booking, actor):
        if actor is None or (booking.user_id != actor.id and not actor.is_admin):
            raise PermissionDenied("Unauthorized.")

    @staticmethod
    def validate_duration(duration_hours):
        low = current_app.config['MIN_BOOKING_HOURS']
        high = current_app.config['MAX_BOOKING_HOURS']
        if isinstance(duration_hours, bool) or not isinstance(duration_hours, int):
            raise InvalidRequest("Duration must be a whole number of hours.")
        if not low <= duration_hours <= high:
            raise InvalidRequest(f"Duration must be between {low} and {high} hours.")

    @staticmethod
    def is_evening_start(room, start_hour):
        if room.pricing_mode == 'time_of_day':
            boundary = room.day_end_hour
        else:
            boundary = current_app.config['EVENING_START_HOUR']
        return start_hour >= boundary

    @staticmethod
    def validate_request(room, day, start_minute, duration_hours, number_of_people=1, enforce_rules=True):
        """
        Checks that need no lock: shape of the request and business rules.
        Raises InvalidRequest before anything is written.
        """
        BookingService.validate_duration(duration_hours)

        if start_minute % 60:
            raise InvalidRequest("Bookings must start on the hour.")

        # Capacity Check
        if number_of_people is not None and number_of_people > room.max_capacity:
            raise InvalidRequest(f"Room capacity error: Room holds {room.max_capacity}, requested {number_of_people}.")

        # Working Hours
        if AvailabilityService.business_hours(room, day) is None:
            raise InvalidRequest(f"{room.name} is closed on {day.strftime('%A')}s.")
        if not AvailabilityService.within_business_hours(room, day, start_minute, duration_hours):
            raise InvalidRequest("Booking outside of business hours.")

        if not enforce_rules:
            return

        # Minimum evening session
        start_hour = start_minute // 60
        if room.evening_min_hours and BookingService.is_evening_start(room, start_hour):
            if duration_hours < room.evening_min_hours:
                raise InvalidRequest(
                    f"Evening sessions in {room.name} require at least {room.evening_min_hours} hours."
                )

        if current_app.config['REJECT_PAST_BOOKINGS']:
            now = studio_now(current_app.config['STUDIO_TIMEZONE'])
            if at_minutes(day, start_minute) < now:
                raise InvalidRequest("Cannot book a slot in the past.")

    @staticmethod
    def price_with_promo(room, start_hour, duration_hours, promo=None):
        """(original_price, discount_amount, total_price); the promo applies after the volume discount."""
        original = PricingService.price(room, start_hour, duration_hours)
        discount = PromoService.discount_for(promo, original) if promo else Decimal('0.00')
        return original, discount, original - discount

    @staticmethod
    def quote(room_id, date, start_time, duration_hours, promo_code=None):
        """Price preview; commits nothing."""
        room = BookingService.get_room(room_id)
        day = parse_date(date)
        start_minute = parse_minutes(start_time)
        BookingService.validate_duration(duration_hours)
        start_hour = start_minute // 60
        original = PricingService.price(room, start_hour, duration_hours)
        promo = PromoService.validate(promo_code, original) if promo_code else None
        original, discount, total = BookingService.price_with_promo(room, start_hour, duration_hours, promo)
        return {
            'room_id': room.id,
            'date': day.isoformat(),
            'start_time': format_minutes(start_minute),
            'duration_hours': duration_hours,
            'subtotal': str(PricingService.subtotal(room.pricing_policy, start_hour, duration_hours)),
            'discount_applied': PricingService.discount_applies(duration_hours),
            'original_price': str(original),
            'promo_code': promo.code if promo else None,
            'discount_amount': str(discount),
            'total_price': str(total),
            'available': AvailabilityService.is_window_free(room, day, start_minute, duration_hours)
        }

    @staticmethod
    def create_booking(user, room_id, date, start_time, duration_hours, number_of_people=1,
                       contact_phone=None, special_requests=None, payment_reference=None, promo_code=None):
        """
        Main entry point to book a room.
        Payment has already been confirmed by the caller.
        """
        room = BookingService.get_room(room_id)
        day = parse_date(date)
        start_minute = parse_minutes(start_time)
        BookingService.validate_request(room, day, start_minute, duration_hours, number_of_people)
        start_hour = start_minute // 60
        promo = None
        if promo_code:
            promo = PromoService.validate(promo_code, PricingService.price(room, start_hour, duration_hours))
        original, discount, total = BookingService.price_with_promo(room, start_hour, duration_hours, promo)

        # Availability check and insert commit as one unit per (room, date)
        with room_date_guard((room.id, day)):
            if not AvailabilityService.is_window_free(room, day, start_minute, duration_hours):
                raise SlotUnavailable("Room is already booked or blocked for this interval.")
            # Last use may have gone to a concurrent booking since validation
            if promo and not PromoService.redeem(promo):
                raise InvalidRequest("Promo code usage limit reached")

            booking = Booking(
                user_id=user.id,
                room_id=room.id,
                date=day,
                start_time=at_minutes(day, start_minute),
                end_time=at_minutes(day, start_minute + duration_hours * 60),
                duration_hours=duration_hours,
                original_price=original,
                discount_amount=discount,
                total_price=total,
                promo_code_id=promo.id if promo else None,
                status=Booking.STATUS_CONFIRMED,
                number_of_people=number_of_people,
                contact_phone=contact_phone,
                special_requests=special_requests,
                payment_reference=payment_reference,
                access_code=BookingService.generate_access_code(),
                credential_status=Booking.CREDENTIAL_NONE
            )
            db.session.add(booking)
            db.session.commit()

        logger.info("Booking %s confirmed: room %s on %s at %s for %sh",
                    booking.id, room.id, day, format_minutes(start_minute), duration_hours)

        # Smart lock is best-effort and happens after the commit
        CredentialService.provision(booking)
        return booking

    @staticmethod
    def cancel_booking(booking_id, actor):
        """Cancel a booking. Cancelling twice is a no-op."""
        booking = BookingService.get_booking(booking_id, actor)

        if booking.status == Booking.STATUS_CANCELLED:
            return booking

        booking.status = Booking.STATUS_CANCELLED
        if current_app.config['INVALIDATE_ACCESS_CODE_ON_CANCEL']:
            booking.access_code_active = False
        db.session.commit()
        logger.info("Booking %s cancelled by user %s", booking.id, actor.id)

        # The slot is already free; a failed revoke is left for reconciliation
        revoked = CredentialService.revoke(booking)
        if not (CredentialService.purge_stale(booking) and revoked):
            logger.warning("Booking %s cancelled but a passcode is still registered", booking.id)
        return booking

    @staticmethod
    def edit_booking(booking_id, actor, new_date, new_start_time, new_duration_hours, enforce_rules=True):
        """Move or resize a booking. On conflict the original booking is left untouched."""
        booking = BookingService.get_booking(booking_id, actor)
        if booking.status != Booking.STATUS_CONFIRMED:
            raise InvalidRequest("Only confirmed bookings can be edited.")

        room = booking.room
        day = parse_date(new_date)
        start_minute = parse_minutes(new_start_time)
        BookingService.validate_request(room, day, start_minute, new_duration_hours,
                                        booking.number_of_people, enforce_rules=enforce_rules)

        new_start = at_minutes(day, start_minute)
        new_end = at_minutes(day, start_minute + new_duration_hours * 60)
        window_changed = (new_start, new_end) != (booking.start_time, booking.end_time)

        with room_date_guard((room.id, booking.date), (room.id, day)):
            if not AvailabilityService.is_window_free(room, day, start_minute, new_duration_hours,
                                                      exclude_booking_id=booking.id):
                raise SlotUnavailable("Room is already booked or blocked for this interval.")

            booking.date = day
            booking.start_time = new_start
            booking.end_time = new_end
            booking.duration_hours = new_duration_hours
            # An existing promo is re-applied to the new price, not redeemed again
            original, discount, total = BookingService.price_with_promo(
                room, start_minute // 60, new_duration_hours, booking.promo_code)
            booking.original_price = original
            booking.discount_amount = discount
            booking.total_price = total
            db.session.commit()

        logger.info("Booking %s moved to %s %s for %sh by user %s",
                    booking.id, day, format_minutes(start_minute), new_duration_hours, actor.id)

        if window_changed:
            CredentialService.reissue(booking)
        return booking

    @staticmethod
    def get_user_bookings(user_id):
        """All bookings for a user, most recent first."""
        return Booking.query.filter(
            Booking.user_id == user_id
        ).order_by(Booking.start_time.desc()).all()

    @staticmethod
    def list_bookings(date=None, room_id=None, status=None):
        query = Booking.query
        if date:
            query = query.filter(Booking.date == parse_date(date))
        if room_id:
            query = query.filter(Booking.room_id == room_id)
        if status:
            query = query.filter(Booking.status == status)
        return query.order_by(Booking.start_time).all()

    @staticmethod
    def now():
        return studio_now(current_app.config['STUDIO_TIMEZONE'])

    @staticmethod
    def serialize(booking):
        return booking.to_dict(now=BookingService.now())

