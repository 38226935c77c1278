import sqlite3
import threading
from datetime import date, timedelta
from decimal import Decimal
import pytest
from studio import create_app, db
from studio.config import TestingConfig
from studio.errors import SlotUnavailable
from studio.models import User, Room, Booking
from studio.services.admin_service import AdminService
from studio.services.booking_service import BookingService
from studio.services import locking
from studio.services.locking import room_date_guard

MONDAY = date(2025, 9, 1)
WORKERS = 8


@pytest.fixture
def file_app(tmp_path):
    class FileTestingConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'concurrency.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'check_same_thread': False, 'timeout': 30}}

    app = create_app(FileTestingConfig)
    app.extensions['lock_gateway'] = None
    with app.app_context():
        db.create_all()
        users = [User(username=f'band{i}', email=f'band{i}@test.com', role='user') for i in range(WORKERS)]
        admin = User(username='admin', email='admin@test.com', role='admin')
        room = Room(name='Pod 1', max_capacity=5, pricing_mode='flat',
                    hourly_rate=Decimal('10.00'), closed_weekdays=[])
        db.session.add_all(users + [admin, room])
        db.session.commit()
        ids = {'users': [u.id for u in users], 'admin': admin.id, 'room': room.id}
    yield app, ids
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _race(app, attempts):
    """Run each callable in its own thread and app context, released together."""
    barrier = threading.Barrier(len(attempts))
    outcomes = []
    outcomes_lock = threading.Lock()

    def worker(attempt):
        with app.app_context():
            barrier.wait()
            try:
                attempt()
                result = 'ok'
            except SlotUnavailable:
                result = 'conflict'
            except Exception as e:
                result = e
            finally:
                db.session.remove()
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(attempt,)) for attempt in attempts]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def test_concurrent_overlapping_bookings_yield_one_winner(file_app):
    app, ids = file_app

    def book(user_id, start):
        def attempt():
            user = db.session.get(User, user_id)
            BookingService.create_booking(user, ids['room'], MONDAY, start, 2)
        return attempt

    # Every request overlaps 14:00-15:00
    starts = ['13:00', '14:00'] * (WORKERS // 2)
    outcomes = _race(app, [book(uid, start) for uid, start in zip(ids['users'], starts)])

    assert outcomes.count('ok') == 1
    assert outcomes.count('conflict') == WORKERS - 1
    with app.app_context():
        assert Booking.query.count() == 1

def test_block_and_booking_race_never_both_win(file_app):
    app, ids = file_app

    def book():
        user = db.session.get(User, ids['users'][0])
        BookingService.create_booking(user, ids['room'], MONDAY, '10:00', 2)

    def block():
        admin = db.session.get(User, ids['admin'])
        AdminService.block_slot(ids['room'], MONDAY, '11:00', '12:00', admin)

    outcomes = _race(app, [book, block])

    assert sorted(outcomes) == ['conflict', 'ok']

def test_guard_holds_the_database_write_lock(file_app, tmp_path):
    app, ids = file_app
    # Another worker process has its own connection and never sees our thread locks
    other = sqlite3.connect(str(tmp_path / 'concurrency.db'), timeout=0)
    try:
        with app.app_context():
            with room_date_guard((ids['room'], MONDAY)):
                with pytest.raises(sqlite3.OperationalError, match="locked"):
                    other.execute("BEGIN IMMEDIATE")
                db.session.rollback()

        other.execute("BEGIN IMMEDIATE")
        other.rollback()
    finally:
        other.close()

def test_guard_over_many_dates_uses_a_fixed_lock_pool(app, init_data):
    pod = init_data['pod']
    slots = [(pod.id, MONDAY + timedelta(weeks=week)) for week in range(300)]

    with room_date_guard(*slots):
        assert any(lock.locked() for lock in locking._STRIPES)

    assert len(locking._STRIPES) == locking.STRIPE_COUNT
    assert not any(lock.locked() for lock in locking._STRIPES)
