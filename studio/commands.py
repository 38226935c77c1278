import click
from werkzeug.security import generate_password_hash
from studio.extensions import db
from studio.models import User, Room, PromoCode
from studio.services.credential_service import CredentialService

ROOMS_DATA = [
    {
        "name": "Pod 1",
        "description": "Compact rehearsal space with full drum kit and amplification",
        "equipment": ["5-piece drum kit", "2x guitar amplifiers", "Bass amplifier", "4-channel mixing desk", "Vocal microphones"],
        "max_capacity": 5,
        "pricing_mode": "time_of_day",
        "day_rate": "7.00",
        "evening_rate": "9.00",
    },
    {
        "name": "Pod 2",
        "description": "Versatile studio with piano and recording capabilities",
        "equipment": ["Digital piano", "Electronic drum kit", "Guitar amplifier", "Bass amplifier", "Audio interface", "Studio monitors"],
        "max_capacity": 5,
        "pricing_mode": "time_of_day",
        "day_rate": "7.00",
        "evening_rate": "9.00",
    },
    {
        "name": "Live Room",
        "description": "Performance space with full backline and PA system",
        "equipment": ["Full backline", "16-channel PA system", "Stage lighting rig", "Wireless microphones", "8x stage monitors"],
        "max_capacity": 12,
        "pricing_mode": "time_of_day",
        "day_rate": "13.00",
        "evening_rate": "18.00",
        "evening_min_hours": 3,
    },
]

PROMO_CODES_DATA = [
    {
        "code": "WELCOME10",
        "description": "10% off a first session",
        "discount_type": "percentage",
        "discount_value": "10.00",
        "max_discount_amount": "20.00",
    },
]


def seed_database(admin_password='password'):
    db.create_all()

    if not User.query.filter_by(username='admin').first():
        admin = User(
            username='admin',
            email='admin@studio.local',
            name='Studio Admin',
            password_hash=generate_password_hash(admin_password, method='pbkdf2:sha256'),
            role='admin'
        )
        db.session.add(admin)
        click.echo("Admin created (admin/%s)" % admin_password)

    for r_data in ROOMS_DATA:
        if not Room.query.filter_by(name=r_data['name']).first():
            room = Room(day_start_hour=9, day_end_hour=17, closed_weekdays=[6], **r_data)
            db.session.add(room)
            click.echo(f"Room {room.name} created.")

    for p_data in PROMO_CODES_DATA:
        if not PromoCode.query.filter_by(code=p_data['code']).first():
            db.session.add(PromoCode(current_usage=0, is_active=True, **p_data))
            click.echo(f"Promo code {p_data['code']} created.")

    db.session.commit()


def register_commands(app):

    @app.cli.command('seed')
    @click.option('--admin-password', default='password', help='Password for the admin account.')
    def seed(admin_password):
        """Create the tables, an admin account and the studio rooms."""
        seed_database(admin_password)
        click.echo("Database seeded successfully.")

    @app.cli.group('locks')
    def locks():
        """Smart lock maintenance."""

    @locks.command('reconcile')
    def reconcile():
        """Retry passcodes left missing or stale by lock cloud failures."""
        report = CredentialService.reconcile_pending()
        click.echo(f"{report.succeeded} fixed, {report.failed} failed, {report.skipped} skipped")
        for error in report.errors:
            click.echo(f"  booking {error['booking_id']}: {error['error']}")

    @locks.command('resync')
    @click.argument('room_id', type=int)
    def resync(room_id):
        """Re-register upcoming passcodes of ROOM_ID on the room's current lock."""
        room = db.session.get(Room, room_id)
        if not room or not room.lock_id:
            raise click.ClickException(f"Room {room_id} has no lock configured")
        report = CredentialService.bulk_resync(room.lock_id, CredentialService.future_passcode_bookings(room_id=room.id))
        click.echo(f"{report.succeeded} resynced, {report.failed} failed, {report.skipped} skipped")
        for error in report.errors:
            click.echo(f"  booking {error['booking_id']}: {error['kind']}: {error['error']}")
