import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app

from studio.errors import CredentialPermissionDenied, CredentialProvisioningFailed, LockGatewayError, LockOffline
from studio.extensions import db, get_lock_gateway
from studio.models import Booking, Room
from studio.utils.timeutils import studio_now, to_epoch_ms

logger = logging.getLogger(__name__)

MAX_PASSCODE_ATTEMPTS = 20


@dataclass
class ResyncReport:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list = field(default_factory=list)

    def record_failure(self, booking, error):
        self.failed += 1
        self.errors.append({'booking_id': booking.id, 'kind': error.kind, 'error': error.message})

    def to_dict(self):
        return {
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
            'errors': self.errors
        }


class CredentialService:

    @staticmethod
    def _now():
        return studio_now(current_app.config['STUDIO_TIMEZONE'])

    @staticmethod
    def activation_window(booking):
        """[start - grace period, end] as wall-clock datetimes."""
        grace = timedelta(minutes=current_app.config['LOCK_GRACE_PERIOD_MINUTES'])
        return booking.start_time - grace, booking.end_time

    @staticmethod
    def _epoch_window(booking):
        tz_name = current_app.config['STUDIO_TIMEZONE']
        starts_at, ends_at = CredentialService.activation_window(booking)
        return to_epoch_ms(starts_at, tz_name), to_epoch_ms(ends_at, tz_name)

    @staticmethod
    def generate_passcode(lock_id, now=None):
        """
        Random numeric passcode not currently active on ``lock_id``.

        Codes recorded here and codes the lock cloud lists for the lock are
        both avoided. Gateway errors propagate.
        """
        length = current_app.config['PASSCODE_LENGTH']
        now = now or CredentialService._now()
        in_use = {
            code for (code,) in db.session.query(Booking.lock_passcode).filter(
                Booking.lock_id == lock_id,
                Booking.lock_passcode.isnot(None),
                Booking.end_time > now
            )
        }
        gateway = get_lock_gateway()
        if gateway is not None:
            in_use.update(passcode.code for passcode in gateway.list_passcodes(lock_id))
        for _ in range(MAX_PASSCODE_ATTEMPTS):
            # no leading zero: some keypads drop it
            code = str(secrets.randbelow(9 * 10 ** (length - 1)) + 10 ** (length - 1))
            if code not in in_use:
                return code
        raise CredentialProvisioningFailed(f"Could not find a free passcode for lock {lock_id}")

    @staticmethod
    def _record_failure(booking, lock_id, error, action):
        booking.credential_error = f"{error.kind}: {error.message}"[:255]
        if isinstance(error, CredentialPermissionDenied):
            logger.error(
                "Lock %s refused to %s passcode for booking %s (not retried): %s",
                lock_id, action, booking.id, error.message,
                extra={'alert': 'lock_permission', 'booking_id': booking.id, 'lock_id': lock_id}
            )
        elif isinstance(error, LockOffline):
            logger.warning(
                "Lock %s offline, could not %s passcode for booking %s: %s",
                lock_id, action, booking.id, error.message,
                extra={'alert': 'lock_offline', 'booking_id': booking.id, 'lock_id': lock_id}
            )
        else:
            logger.warning(
                "Could not %s passcode for booking %s on lock %s: %s",
                action, booking.id, lock_id, error.message
            )

    @staticmethod
    def provision(booking, lock_id=None):
        """
        Register a time-bounded passcode for ``booking`` on its room's lock.

        Best-effort: returns True when a passcode is now active, False otherwise.
        Failures are recorded on the booking and logged, never raised.
        """
        gateway = get_lock_gateway()
        lock_id = lock_id or booking.room.lock_id
        if gateway is None or not lock_id:
            logger.info("No smart lock for booking %s, fallback access code only", booking.id)
            return False

        start_ms, end_ms = CredentialService._epoch_window(booking)
        booking.credential_status = Booking.CREDENTIAL_PENDING
        db.session.commit()

        try:
            code = CredentialService.generate_passcode(lock_id)
            credential_id = gateway.create_passcode(lock_id, code, start_ms, end_ms, f"Booking-{booking.id}")
        except LockGatewayError as e:
            CredentialService._record_failure(booking, lock_id, e, 'create')
            booking.credential_status = Booking.CREDENTIAL_NONE
            db.session.commit()
            return False

        # The booking may have been cancelled while the lock cloud was answering
        db.session.refresh(booking)
        booking.lock_id = lock_id
        booking.lock_passcode = code
        booking.lock_passcode_id = credential_id
        booking.credential_status = Booking.CREDENTIAL_ACTIVE
        booking.credential_error = None
        db.session.commit()
        logger.info("Passcode issued for booking %s on lock %s", booking.id, lock_id)

        if not booking.is_confirmed:
            CredentialService.revoke(booking)
            return False
        return True

    @staticmethod
    def _delete_with_retry(gateway, lock_id, credential_id):
        """Delete a credential, retrying transient errors. Returns the final error, or None."""
        retries = current_app.config['LOCK_REVOKE_RETRIES']
        backoff = current_app.config['LOCK_RETRY_BACKOFF_SECONDS']
        attempt = 0
        while True:
            try:
                gateway.delete_passcode(lock_id, credential_id)
                return None
            except LockGatewayError as e:
                if e.retryable and attempt < retries:
                    attempt += 1
                    time.sleep(backoff * attempt)
                    continue
                return e

    @staticmethod
    def revoke(booking):
        """
        Delete the booking's passcode from the lock cloud.

        Transient failures are retried a bounded number of times. When every
        attempt fails the passcode stays recorded so reconciliation can
        retry later; the caller is never blocked.
        """
        if not booking.lock_passcode_id:
            return True

        gateway = get_lock_gateway()
        if gateway is None:
            logger.warning("Booking %s holds a passcode but no lock gateway is configured", booking.id)
            return False

        error = CredentialService._delete_with_retry(gateway, booking.lock_id, booking.lock_passcode_id)
        if error:
            CredentialService._record_failure(booking, booking.lock_id, error, 'delete')
            db.session.commit()
            return False

        booking.lock_passcode = None
        booking.lock_passcode_id = None
        booking.credential_status = Booking.CREDENTIAL_REVOKED
        booking.credential_error = None
        db.session.commit()
        logger.info("Passcode revoked for booking %s", booking.id)
        return True

    @staticmethod
    def reissue(booking):
        """
        Replace the passcode of a booking whose window moved.

        If the lock will not delete the old credential, it is parked in
        ``stale_credentials`` for reconciliation and the booking still gets a
        passcode for its new window.
        """
        if booking.lock_passcode_id and not CredentialService.revoke(booking):
            booking.stale_credentials = (booking.stale_credentials or []) + [
                {'lock_id': booking.lock_id, 'credential_id': booking.lock_passcode_id}
            ]
            booking.lock_passcode = None
            booking.lock_passcode_id = None
            booking.credential_status = Booking.CREDENTIAL_PENDING
            db.session.commit()
            logger.warning("Booking %s moved, old passcode left on lock %s until it accepts the delete",
                           booking.id, booking.lock_id)
        return CredentialService.provision(booking)

    @staticmethod
    def purge_stale(booking):
        """Delete credentials left behind by earlier windows. True when none remain."""
        if not booking.stale_credentials:
            return True
        gateway = get_lock_gateway()
        if gateway is None:
            return False

        remaining = []
        for entry in booking.stale_credentials:
            error = CredentialService._delete_with_retry(gateway, entry['lock_id'], entry['credential_id'])
            if error:
                CredentialService._record_failure(booking, entry['lock_id'], error, 'delete')
                remaining.append(entry)
        booking.stale_credentials = remaining or None
        db.session.commit()
        return not remaining

    @staticmethod
    def future_passcode_bookings(room_id=None, now=None):
        now = now or CredentialService._now()
        query = Booking.query.filter(
            Booking.status == Booking.STATUS_CONFIRMED,
            Booking.lock_passcode.isnot(None),
            Booking.end_time > now
        )
        if room_id is not None:
            query = query.filter(Booking.room_id == room_id)
        return query.order_by(Booking.start_time).all()

    @staticmethod
    def bulk_resync(target_lock_id, bookings, now=None):
        """
        Re-register each future booking's passcode on ``target_lock_id``.

        Safe to re-run: bookings already living on the target lock are
        skipped. One booking failing never stops the batch.
        """
        gateway = get_lock_gateway()
        now = now or CredentialService._now()
        report = ResyncReport()

        for booking in bookings:
            if not booking.is_confirmed or not booking.lock_passcode or booking.end_time <= now:
                report.skipped += 1
                continue
            if booking.lock_id == target_lock_id and booking.credential_status == Booking.CREDENTIAL_ACTIVE:
                report.skipped += 1
                continue
            if gateway is None:
                report.record_failure(booking, LockGatewayError("Lock gateway is not configured"))
                continue

            start_ms, end_ms = CredentialService._epoch_window(booking)
            try:
                credential_id = gateway.create_passcode(
                    target_lock_id, booking.lock_passcode, start_ms, end_ms, f"Booking-{booking.id}"
                )
            except LockGatewayError as e:
                CredentialService._record_failure(booking, target_lock_id, e, 'resync')
                db.session.commit()
                report.record_failure(booking, e)
                continue

            booking.lock_id = target_lock_id
            booking.lock_passcode_id = credential_id
            booking.credential_status = Booking.CREDENTIAL_ACTIVE
            booking.credential_error = None
            db.session.commit()
            report.succeeded += 1

        logger.info(
            "Resync to lock %s finished: %s ok, %s failed, %s skipped",
            target_lock_id, report.succeeded, report.failed, report.skipped
        )
        return report

    @staticmethod
    def reconcile_pending(now=None):
        """
        Retry work left behind by transient lock failures.

        Deletes credentials left on a lock by a moved booking's old window,
        provisions passcodes for upcoming bookings that have none and
        re-attempts deletion for cancelled bookings still holding one.
        Permission failures are left for an operator.
        """
        now = now or CredentialService._now()
        report = ResyncReport()
        if get_lock_gateway() is None:
            return report

        for booking in Booking.query.filter(Booking.stale_credentials.isnot(None)).all():
            if CredentialService.purge_stale(booking):
                report.succeeded += 1
            else:
                report.failed += 1
                report.errors.append({'booking_id': booking.id, 'error': booking.credential_error})

        missing = Booking.query.join(Room).filter(
            Booking.status == Booking.STATUS_CONFIRMED,
            Booking.lock_passcode.is_(None),
            Booking.end_time > now,
            Room.lock_id.isnot(None)
        ).all()
        for booking in missing:
            if (booking.credential_error or '').startswith(CredentialPermissionDenied.kind):
                report.skipped += 1
                continue
            if CredentialService.provision(booking):
                report.succeeded += 1
            else:
                report.failed += 1
                report.errors.append({'booking_id': booking.id, 'error': booking.credential_error})

        stale = Booking.query.filter(
            Booking.status == Booking.STATUS_CANCELLED,
            Booking.lock_passcode_id.isnot(None)
        ).all()
        for booking in stale:
            if CredentialService.revoke(booking):
                report.succeeded += 1
            else:
                report.failed += 1
                report.errors.append({'booking_id': booking.id, 'error': booking.credential_error})

        return report

    @staticmethod
    def test_connection(lock_id):
        """Diagnostic lock status; touches no booking data."""
        gateway = get_lock_gateway()
        if gateway is None:
            return {'configured': False, 'lock_id': lock_id}
        if not lock_id:
            return {'configured': True, 'lock_id': None, 'online': False, 'error': 'No lock assigned'}
        try:
            status = gateway.get_status(lock_id)
        except LockGatewayError as e:
            return {'configured': True, 'lock_id': lock_id, 'online': False, 'kind': e.kind, 'error': e.message}
        result = {'configured': True, 'lock_id': lock_id, 'checked_at': datetime.utcnow().isoformat()}
        result.update(status.to_dict())
        return result
