import pytest
from datetime import date, datetime
from decimal import Decimal
from studio import db
from studio.models import Booking
from studio.errors import InvalidRequest, SlotUnavailable, PermissionDenied, NotFound
from studio.services.availability_service import AvailabilityService
from studio.services.booking_service import BookingService

MONDAY = date(2025, 9, 1)


def test_booking_happy_path(app, init_data):
    booking = BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, '12:00', 2)
    assert booking.id is not None
    assert booking.status == 'confirmed'
    assert booking.start_time == datetime(2025, 9, 1, 12, 0)
    assert booking.end_time == datetime(2025, 9, 1, 14, 0)
    assert booking.total_price == Decimal('20.00')
    assert len(booking.access_code) == 4 and booking.access_code.isdigit()
    assert booking.lock_passcode is None

def test_booking_conflict(app, init_data):
    pod = init_data['pod']
    BookingService.create_booking(init_data['user'], pod.id, MONDAY, '10:00', 2)

    with pytest.raises(SlotUnavailable):
        BookingService.create_booking(init_data['other'], pod.id, MONDAY, '11:00', 2)

    booking = BookingService.create_booking(init_data['other'], pod.id, MONDAY, '12:00', 2)
    assert booking.total_price == Decimal('20.00')

def test_conflict_is_per_room(app, init_data):
    BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, '10:00', 2)
    booking = BookingService.create_booking(init_data['user'], init_data['pod_two'].id, MONDAY, '10:00', 2)
    assert booking.status == 'confirmed'

@pytest.mark.parametrize('duration', [0, 13, -1, 2.5, '3', True])
def test_duration_bounds(app, init_data, duration):
    with pytest.raises(InvalidRequest):
        BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, '10:00', duration)
    assert Booking.query.count() == 0

def test_twelve_hours_is_allowed(app, init_data):
    booking = BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, '12:00', 12)
    assert booking.end_time == datetime(2025, 9, 2, 0, 0)
    assert booking.to_dict()['end_time'] == '24:00'
    assert booking.total_price == Decimal('108.00')

@pytest.mark.parametrize('start_time', ['10:30', '25:00', 'noon', '10'])
def test_malformed_start_time(app, init_data, start_time):
    with pytest.raises(InvalidRequest):
        BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, start_time, 1)

def test_outside_business_hours(app, init_data):
    with pytest.raises(InvalidRequest, match="business hours"):
        BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, '08:00', 2)
    with pytest.raises(InvalidRequest, match="business hours"):
        BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, '23:00', 2)

def test_closed_day(app, init_data):
    with pytest.raises(InvalidRequest, match="closed"):
        BookingService.create_booking(init_data['user'], init_data['live'].id, date(2025, 9, 7), '12:00', 3)

def test_capacity(app, init_data):
    with pytest.raises(InvalidRequest, match="capacity"):
        BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, '12:00', 2, number_of_people=9)

def test_unknown_room(app, init_data):
    with pytest.raises(NotFound):
        BookingService.create_booking(init_data['user'], 999, MONDAY, '12:00', 2)

def test_evening_minimum_duration(app, init_data):
    live = init_data['live']
    with pytest.raises(InvalidRequest, match="at least 3 hours"):
        BookingService.create_booking(init_data['user'], live.id, MONDAY, '18:00', 2)

    booking = BookingService.create_booking(init_data['user'], live.id, MONDAY, '18:00', 3)
    assert booking.total_price == Decimal('54.00')
    # Daytime sessions have no minimum
    assert BookingService.create_booking(init_data['user'], live.id, MONDAY, '10:00', 1).id

def test_past_bookings_rejected_when_enabled(app, init_data):
    app.config['REJECT_PAST_BOOKINGS'] = True
    with pytest.raises(InvalidRequest, match="past"):
        BookingService.create_booking(init_data['user'], init_data['pod'].id, date(2020, 1, 6), '12:00', 1)

def test_cancel_is_idempotent(app, init_data):
    user = init_data['user']
    booking = BookingService.create_booking(user, init_data['pod'].id, MONDAY, '10:00', 2)

    first = BookingService.cancel_booking(booking.id, user)
    second = BookingService.cancel_booking(booking.id, user)
    assert first.status == second.status == 'cancelled'
    assert second.access_code  # kept for audit
    assert second.access_code_active is False

def test_cancel_requires_owner_or_admin(app, init_data):
    booking = BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, '10:00', 2)

    with pytest.raises(PermissionDenied):
        BookingService.cancel_booking(booking.id, init_data['other'])
    BookingService.cancel_booking(booking.id, init_data['user'])
    # Still refused once cancelled
    with pytest.raises(PermissionDenied):
        BookingService.cancel_booking(booking.id, init_data['other'])
    assert BookingService.cancel_booking(booking.id, init_data['admin']).status == 'cancelled'

def test_availability_round_trip(app, init_data):
    pod = init_data['pod']
    booking = BookingService.create_booking(init_data['user'], pod.id, MONDAY, '14:00', 3)

    for start in (13, 14, 15, 16):
        assert not AvailabilityService.is_window_free(pod, MONDAY, start * 60, 2)

    BookingService.cancel_booking(booking.id, init_data['user'])
    for start in (13, 14, 15, 16):
        assert AvailabilityService.is_window_free(pod, MONDAY, start * 60, 2)

def test_edit_can_overlap_its_own_window(app, init_data):
    user = init_data['user']
    booking = BookingService.create_booking(user, init_data['pod_two'].id, MONDAY, '14:00', 2)

    edited = BookingService.edit_booking(booking.id, user, MONDAY, '15:00', 5)
    assert edited.start_time == datetime(2025, 9, 1, 15, 0)
    assert edited.duration_hours == 5
    assert edited.total_price == Decimal('41.40')

def test_edit_conflict_leaves_original_untouched(app, init_data):
    user = init_data['user']
    pod = init_data['pod']
    booking = BookingService.create_booking(user, pod.id, MONDAY, '10:00', 2)
    BookingService.create_booking(init_data['other'], pod.id, MONDAY, '14:00', 2)

    with pytest.raises(SlotUnavailable):
        BookingService.edit_booking(booking.id, user, MONDAY, '13:00', 2)

    db.session.expire_all()
    unchanged = db.session.get(Booking, booking.id)
    assert unchanged.start_time == datetime(2025, 9, 1, 10, 0)
    assert unchanged.duration_hours == 2
    assert unchanged.total_price == Decimal('20.00')

def test_edit_moves_to_another_date(app, init_data):
    user = init_data['user']
    booking = BookingService.create_booking(user, init_data['pod'].id, MONDAY, '10:00', 2)
    BookingService.edit_booking(booking.id, user, '2025-09-02', '10:00', 2)

    assert AvailabilityService.is_window_free(init_data['pod'], MONDAY, 10 * 60, 2)
    assert not AvailabilityService.is_window_free(init_data['pod'], date(2025, 9, 2), 10 * 60, 2)

def test_cancelled_booking_cannot_be_edited(app, init_data):
    user = init_data['user']
    booking = BookingService.create_booking(user, init_data['pod'].id, MONDAY, '10:00', 2)
    BookingService.cancel_booking(booking.id, user)

    with pytest.raises(InvalidRequest):
        BookingService.edit_booking(booking.id, user, MONDAY, '12:00', 2)

def test_completed_is_derived_from_time(app, init_data):
    booking = BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, '10:00', 2)
    assert booking.effective_status(datetime(2025, 9, 1, 11, 0)) == 'confirmed'
    assert booking.effective_status(datetime(2025, 9, 1, 12, 0)) == 'completed'
    assert booking.status == 'confirmed'

def test_quote_does_not_commit(app, init_data):
    quote = BookingService.quote(init_data['pod_two'].id, MONDAY, '15:00', 5)
    assert Decimal(quote['subtotal']) == Decimal('46')
    assert quote['total_price'] == '41.40'
    assert quote['discount_applied'] is True
    assert quote['available'] is True
    assert Booking.query.count() == 0
