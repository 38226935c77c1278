import pytest
from datetime import date
from studio import db
from studio.models import BlockedSlot, Booking
from studio.errors import InvalidRequest, SlotUnavailable, PermissionDenied, NotFound
from studio.services.admin_service import AdminService
from studio.services.availability_service import AvailabilityService, Interval
from studio.services.booking_service import BookingService

MONDAY = date(2025, 9, 1)
SUNDAY = date(2025, 9, 7)
FUTURE_MONDAY = date(2030, 6, 3)


def test_block_makes_slot_unbookable(app, init_data):
    pod = init_data['pod']
    block = AdminService.block_slot(pod.id, MONDAY, '14:00', '16:30', init_data['admin'], reason='maintenance')
    assert block.to_dict()['end_time'] == '16:30'

    with pytest.raises(SlotUnavailable):
        BookingService.create_booking(init_data['user'], pod.id, MONDAY, '16:00', 1)
    assert BookingService.create_booking(init_data['user'], pod.id, MONDAY, '17:00', 1).id

def test_block_over_confirmed_booking_is_refused(app, init_data):
    pod = init_data['pod']
    BookingService.create_booking(init_data['user'], pod.id, MONDAY, '10:00', 2)

    with pytest.raises(SlotUnavailable, match="confirmed bookings"):
        AdminService.block_slot(pod.id, MONDAY, '11:00', '13:00', init_data['admin'])
    assert BlockedSlot.query.count() == 0

    # Touching the booking is fine
    AdminService.block_slot(pod.id, MONDAY, '12:00', '13:00', init_data['admin'])
    assert BlockedSlot.query.count() == 1

def test_block_over_cancelled_booking_is_allowed(app, init_data):
    pod = init_data['pod']
    booking = BookingService.create_booking(init_data['user'], pod.id, MONDAY, '10:00', 2)
    BookingService.cancel_booking(booking.id, init_data['user'])

    AdminService.block_slot(pod.id, MONDAY, '10:00', '12:00', init_data['admin'])
    assert not AvailabilityService.is_window_free(pod, MONDAY, 10 * 60, 1)

def test_block_requires_admin(app, init_data):
    with pytest.raises(PermissionDenied):
        AdminService.block_slot(init_data['pod'].id, MONDAY, '10:00', '12:00', init_data['user'])

@pytest.mark.parametrize('start, end', [('12:00', '12:00'), ('13:00', '12:00'), ('9am', '10:00')])
def test_block_rejects_bad_interval(app, init_data, start, end):
    with pytest.raises(InvalidRequest):
        AdminService.block_slot(init_data['pod'].id, MONDAY, start, end, init_data['admin'])

def test_recurring_block_needs_end_date(app, init_data):
    with pytest.raises(InvalidRequest):
        AdminService.block_slot(init_data['pod'].id, SUNDAY, '09:00', '24:00', init_data['admin'], recurring=True)
    with pytest.raises(InvalidRequest):
        AdminService.block_slot(init_data['pod'].id, SUNDAY, '09:00', '24:00', init_data['admin'],
                                recurring=True, recurring_until='2025-09-01')

def test_recurring_block_is_stored_once(app, init_data):
    pod = init_data['pod']
    rule = AdminService.block_slot(pod.id, SUNDAY, '09:00', '24:00', init_data['admin'],
                                   reason='closed Sundays', recurring=True, recurring_until='2025-12-31')

    assert BlockedSlot.query.count() == 1
    listed = AdminService.list_blocks(pod.id, '2025-11-16')
    assert len(listed) == 1
    assert listed[0].parent_id == rule.id
    assert listed[0].reason == 'closed Sundays'
    assert AdminService.list_blocks(pod.id, '2025-11-17') == []

def test_recurring_block_refused_if_any_occurrence_is_booked(app, init_data):
    pod = init_data['pod']
    BookingService.create_booking(init_data['user'], pod.id, date(2025, 9, 21), '18:00', 2)

    with pytest.raises(SlotUnavailable):
        AdminService.block_slot(pod.id, SUNDAY, '17:00', '20:00', init_data['admin'],
                                recurring=True, recurring_until='2025-10-31')
    # Same hours on a different weekday do not clash
    AdminService.block_slot(pod.id, MONDAY, '17:00', '20:00', init_data['admin'],
                            recurring=True, recurring_until='2025-10-31')

def test_unblock_removes_every_occurrence(app, init_data):
    pod = init_data['pod']
    rule = AdminService.block_slot(pod.id, SUNDAY, '09:00', '24:00', init_data['admin'],
                                   recurring=True, recurring_until='2025-12-31')
    AdminService.unblock_slot(rule.id, init_data['admin'])

    assert BlockedSlot.query.count() == 0
    assert AvailabilityService.free_windows(pod, date(2025, 10, 5)) == [Interval(9 * 60, 24 * 60)]

    with pytest.raises(NotFound):
        AdminService.unblock_slot(rule.id, init_data['admin'])

def test_admin_edit_bypasses_evening_minimum(app, init_data):
    live = init_data['live']
    booking = BookingService.create_booking(init_data['user'], live.id, MONDAY, '10:00', 1)

    with pytest.raises(InvalidRequest, match="at least 3 hours"):
        BookingService.edit_booking(booking.id, init_data['user'], MONDAY, '18:00', 1)

    edited = AdminService.admin_edit_booking(booking.id, init_data['admin'], MONDAY, '18:00', 1)
    assert edited.start_time.hour == 18
    assert str(edited.total_price) == '18.00'

def test_admin_edit_still_checks_business_hours_and_conflicts(app, init_data):
    pod = init_data['pod']
    booking = BookingService.create_booking(init_data['user'], pod.id, MONDAY, '10:00', 2)
    BookingService.create_booking(init_data['other'], pod.id, MONDAY, '14:00', 2)

    with pytest.raises(InvalidRequest):
        AdminService.admin_edit_booking(booking.id, init_data['admin'], MONDAY, '23:00', 2)
    with pytest.raises(SlotUnavailable):
        AdminService.admin_edit_booking(booking.id, init_data['admin'], MONDAY, '15:00', 1)

def test_admin_actions_require_admin(app, init_data):
    booking = BookingService.create_booking(init_data['user'], init_data['pod'].id, MONDAY, '10:00', 2)

    with pytest.raises(PermissionDenied):
        AdminService.admin_cancel_booking(booking.id, init_data['user'])
    with pytest.raises(PermissionDenied):
        AdminService.admin_edit_booking(booking.id, init_data['user'], MONDAY, '12:00', 2)

    assert AdminService.admin_cancel_booking(booking.id, init_data['admin']).status == 'cancelled'

def test_configure_room_lock_moves_upcoming_passcodes(app, init_data, gateway):
    live = init_data['live']
    upcoming = BookingService.create_booking(init_data['user'], live.id, FUTURE_MONDAY, '10:00', 1)
    code = upcoming.lock_passcode

    room, report = AdminService.configure_room_lock(live.id, 'lock-new', 'New Door', init_data['admin'])

    assert room.lock_id == 'lock-new'
    assert report.succeeded == 1
    db.session.expire_all()
    upcoming = db.session.get(Booking, upcoming.id)
    assert upcoming.lock_id == 'lock-new'
    # The customer keeps the same code
    assert upcoming.lock_passcode == code
    assert gateway.passcodes['lock-new'][upcoming.lock_passcode_id].code == code

def test_configure_room_lock_requires_name(app, init_data):
    with pytest.raises(InvalidRequest):
        AdminService.configure_room_lock(init_data['live'].id, 'lock-new', '', init_data['admin'])

def test_remove_room_lock_revokes_passcodes(app, init_data, gateway):
    live = init_data['live']
    booking = BookingService.create_booking(init_data['user'], live.id, FUTURE_MONDAY, '10:00', 1)

    room, failures = AdminService.remove_room_lock(live.id, init_data['admin'])

    assert failures == []
    assert room.lock_id is None
    assert gateway.passcodes['lock-live'] == {}
    assert booking.credential_status == 'revoked'
    # Fallback code still works
    assert booking.access_code and booking.access_code_active
