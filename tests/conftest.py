import pytest
from decimal import Decimal
from studio import create_app, db
from studio.config import TestingConfig
from studio.models import User, Room
from studio.services.lock_gateway import LockGateway, LockPasscode, LockStatus


class FakeLockGateway(LockGateway):
    """In-memory lock cloud. Queue exceptions in create_errors, delete_errors or list_errors to simulate failures."""

    def __init__(self):
        self.passcodes = {}
        self.create_errors = []
        self.delete_errors = []
        self.list_errors = []
        self.status = LockStatus(online=True, battery_level=80)
        self.status_error = None
        self.records = []
        self.calls = []
        self._next_id = 1000

    def create_passcode(self, lock_id, code, start_ms, end_ms, label):
        self.calls.append(('create', lock_id, code, start_ms, end_ms, label))
        if self.create_errors:
            raise self.create_errors.pop(0)
        self._next_id += 1
        credential_id = str(self._next_id)
        self.passcodes.setdefault(lock_id, {})[credential_id] = LockPasscode(
            credential_id=credential_id, code=code, start_ms=start_ms, end_ms=end_ms, label=label
        )
        return credential_id

    def delete_passcode(self, lock_id, credential_id):
        self.calls.append(('delete', lock_id, credential_id))
        if self.delete_errors:
            raise self.delete_errors.pop(0)
        self.passcodes.get(lock_id, {}).pop(credential_id, None)

    def list_passcodes(self, lock_id):
        self.calls.append(('list', lock_id))
        if self.list_errors:
            raise self.list_errors.pop(0)
        return list(self.passcodes.get(lock_id, {}).values())

    def get_status(self, lock_id):
        if self.status_error:
            raise self.status_error
        return self.status

    def list_unlock_records(self, lock_id, start_ms, end_ms):
        return [r for r in self.records if start_ms <= r.unlock_time_ms <= end_ms]


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    app.extensions['lock_gateway'] = None
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def client(app):
    return app.test_client()

@pytest.fixture
def gateway(app):
    fake = FakeLockGateway()
    app.extensions['lock_gateway'] = fake
    return fake

@pytest.fixture
def init_data(app):
    user = User(username='test', email='test@test.com', name='Test Drummer', role='user')
    other = User(username='other', email='other@test.com', role='user')
    admin = User(username='admin', email='admin@test.com', role='admin')
    pod = Room(
        name='Pod 1', max_capacity=5, equipment=['drum kit'],
        pricing_mode='flat', hourly_rate=Decimal('10.00'), closed_weekdays=[]
    )
    pod_two = Room(
        name='Pod 2', max_capacity=5,
        pricing_mode='time_of_day', day_rate=Decimal('8.00'), evening_rate=Decimal('10.00'),
        day_start_hour=9, day_end_hour=17, closed_weekdays=[]
    )
    live = Room(
        name='Live Room', max_capacity=12,
        pricing_mode='time_of_day', day_rate=Decimal('13.00'), evening_rate=Decimal('18.00'),
        day_start_hour=9, day_end_hour=17, evening_min_hours=3, closed_weekdays=[6],
        lock_id='lock-live', lock_name='Live Room Door'
    )
    db.session.add_all([user, other, admin, pod, pod_two, live])
    db.session.commit()
    return {'user': user, 'other': other, 'admin': admin, 'pod': pod, 'pod_two': pod_two, 'live': live}
