import logging
import threading
import zlib
from contextlib import contextmanager

from sqlalchemy import text

from studio.extensions import db
from studio.models import Room

logger = logging.getLogger(__name__)

# Fixed pool: distinct (room, date) keys may share a stripe, which only costs some parallelism
STRIPE_COUNT = 64
_STRIPES = [threading.Lock() for _ in range(STRIPE_COUNT)]


def _guard_key(room_id, day):
    return f"room:{room_id}:date:{day.isoformat()}"


def _stripe_index(key):
    return zlib.crc32(key.encode('utf-8')) % STRIPE_COUNT


def _database_lock(keys, room_ids):
    """
    Take a lock other worker processes see too, held until the transaction ends.

    PostgreSQL: advisory lock per (room, date). SQLite: the database write lock,
    via BEGIN IMMEDIATE. Anything else: the room rows, SELECT ... FOR UPDATE.
    """
    dialect = db.session.get_bind().dialect.name
    if dialect == 'postgresql':
        for key in keys:
            lock_id = zlib.crc32(key.encode('utf-8'))
            db.session.execute(text("SELECT pg_advisory_xact_lock(:lock_id)"), {'lock_id': lock_id})
    elif dialect == 'sqlite':
        raw = db.session.connection().connection.driver_connection
        if not raw.in_transaction:
            raw.execute("BEGIN IMMEDIATE")
    else:
        db.session.query(Room).filter(Room.id.in_(room_ids)).order_by(Room.id).with_for_update().all()


@contextmanager
def room_date_guard(*slots):
    """
    Serialize the availability check and the commit for each (room_id, date) in ``slots``.

    Stripes are taken in index order so two edits moving bookings between the
    same dates cannot deadlock. The caller must commit (or roll back) inside
    the block; the guard never spans a lock gateway call.
    """
    keys = sorted({_guard_key(room_id, day) for room_id, day in slots})
    room_ids = sorted({room_id for room_id, _ in slots})
    acquired = []
    try:
        for index in sorted({_stripe_index(key) for key in keys}):
            _STRIPES[index].acquire()
            acquired.append(_STRIPES[index])
        _database_lock(keys, room_ids)
        yield
    except Exception:
        db.session.rollback()
        raise
    finally:
        for lock in reversed(acquired):
            lock.release()
