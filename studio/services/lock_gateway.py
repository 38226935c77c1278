"""Client for the smart-lock vendor cloud (TTLock Open API)."""
import hashlib
import logging
import threading
import time
from dataclasses import dataclass, asdict
from typing import List, Optional

import requests

from studio.errors import (
    CredentialPermissionDenied,
    CredentialProvisioningFailed,
    LockOffline,
)

logger = logging.getLogger(__name__)

# Vendor errcodes that will not fix themselves on retry
PERMISSION_ERRCODES = {20002, -2018, -1003, 10004}
# Lock or gateway unreachable
OFFLINE_ERRCODES = {-2012, -3002, -3003, -3037, -4043}
INVALID_TOKEN_ERRCODES = {10003}


@dataclass
class LockStatus:
    online: bool
    battery_level: Optional[int] = None

    def to_dict(self):
        return asdict(self)


@dataclass
class LockPasscode:
    credential_id: str
    code: str
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None
    label: Optional[str] = None


@dataclass
class UnlockRecord:
    unlock_time_ms: int
    method: str
    passcode: Optional[str] = None
    username: Optional[str] = None
    success: bool = True


class LockGateway:
    """Operations the booking core needs from a smart-lock cloud."""

    def create_passcode(self, lock_id, code, start_ms, end_ms, label) -> str:
        raise NotImplementedError

    def delete_passcode(self, lock_id, credential_id) -> None:
        raise NotImplementedError

    def list_passcodes(self, lock_id) -> List[LockPasscode]:
        raise NotImplementedError

    def get_status(self, lock_id) -> LockStatus:
        raise NotImplementedError

    def list_unlock_records(self, lock_id, start_ms, end_ms) -> List[UnlockRecord]:
        raise NotImplementedError


# TTLock lockRecord "recordType" values we care about
RECORD_METHODS = {
    1: 'App',
    4: 'Passcode',
    7: 'IC Card',
    8: 'Fingerprint',
    12: 'Gateway',
    47: 'Lock',
}


class TTLockGateway(LockGateway):

    def __init__(self, base_url, client_id, client_secret, username, password, timeout=10, session=None):
        self.base_url = base_url.rstrip('/')
        self.client_id = client_id
        self.client_secret = client_secret
        self.username = username
        self.password = password
        self.timeout = timeout
        self.session = session or requests.Session()
        self._token = None
        self._token_expires_at = 0
        self._token_lock = threading.Lock()

    @classmethod
    def from_config(cls, config):
        """Build a gateway from app config, or return None if credentials are missing."""
        required = ['TTLOCK_CLIENT_ID', 'TTLOCK_CLIENT_SECRET', 'TTLOCK_USERNAME', 'TTLOCK_PASSWORD']
        if not all(config.get(key) for key in required):
            return None
        return cls(
            base_url=config['TTLOCK_BASE_URL'],
            client_id=config['TTLOCK_CLIENT_ID'],
            client_secret=config['TTLOCK_CLIENT_SECRET'],
            username=config['TTLOCK_USERNAME'],
            password=config['TTLOCK_PASSWORD'],
            timeout=config.get('LOCK_GATEWAY_TIMEOUT', 10)
        )

    # --- transport ---

    def _post(self, path, data):
        try:
            response = self.session.post(f"{self.base_url}{path}", data=data, timeout=self.timeout)
        except requests.Timeout as e:
            raise CredentialProvisioningFailed(f"Lock cloud timed out on {path}: {e}")
        except requests.RequestException as e:
            raise CredentialProvisioningFailed(f"Lock cloud unreachable on {path}: {e}")

        if response.status_code == 429:
            raise CredentialProvisioningFailed(f"Lock cloud rate limit hit on {path}")
        if response.status_code in (401, 403):
            raise CredentialPermissionDenied(f"Lock cloud refused credentials on {path} ({response.status_code})")
        if response.status_code >= 400:
            raise CredentialProvisioningFailed(f"Lock cloud error {response.status_code} on {path}: {response.text[:200]}")

        try:
            payload = response.json()
        except ValueError:
            raise CredentialProvisioningFailed(f"Lock cloud returned non-JSON body on {path}")

        errcode = payload.get('errcode')
        if errcode not in (None, 0):
            self._raise_for_errcode(path, errcode, payload.get('errmsg') or payload.get('description'))
        return payload

    def _raise_for_errcode(self, path, errcode, errmsg):
        message = f"Lock cloud errcode {errcode} on {path}: {errmsg or 'unknown error'}"
        if errcode in INVALID_TOKEN_ERRCODES:
            self._token = None
        if errcode in PERMISSION_ERRCODES:
            raise CredentialPermissionDenied(message, errcode=errcode)
        if errcode in OFFLINE_ERRCODES:
            raise LockOffline(message, errcode=errcode)
        raise CredentialProvisioningFailed(message, errcode=errcode)

    def _access_token(self):
        with self._token_lock:
            if self._token and self._token_expires_at > time.time():
                return self._token

            payload = self._post('/oauth2/token', {
                'client_id': self.client_id,
                'client_secret': self.client_secret,
                'grant_type': 'password',
                'username': self.username,
                'password': hashlib.md5(self.password.encode('utf-8')).hexdigest()
            })
            token = payload.get('access_token')
            if not token:
                raise CredentialPermissionDenied(f"Lock cloud authentication failed: {payload}")

            # Refresh one minute early
            self._token = token
            self._token_expires_at = time.time() + int(payload.get('expires_in', 0)) - 60
            logger.info("Lock cloud authentication successful, token expires in %ss", payload.get('expires_in'))
            return self._token

    def _signed(self, lock_id, **fields):
        data = {
            'clientId': self.client_id,
            'accessToken': self._access_token(),
            'lockId': lock_id,
            'date': str(int(time.time() * 1000))
        }
        data.update({key: str(value) for key, value in fields.items()})
        return data

    # --- operations ---

    def create_passcode(self, lock_id, code, start_ms, end_ms, label):
        payload = self._post('/v3/keyboardPwd/add', self._signed(
            lock_id,
            keyboardPwd=code,
            keyboardPwdName=label,
            startDate=start_ms,
            endDate=end_ms,
            addType=2 # push through the gateway
        ))
        credential_id = payload.get('keyboardPwdId')
        if not credential_id:
            raise CredentialProvisioningFailed(f"Unexpected lock cloud response: {payload}")
        return str(credential_id)

    def delete_passcode(self, lock_id, credential_id):
        self._post('/v3/keyboardPwd/delete', self._signed(
            lock_id,
            keyboardPwdId=credential_id,
            deleteType=2
        ))

    def list_passcodes(self, lock_id):
        payload = self._post('/v3/lock/listKeyboardPwd', self._signed(lock_id, pageNo=1, pageSize=100))
        return [
            LockPasscode(
                credential_id=str(item.get('keyboardPwdId')),
                code=str(item.get('keyboardPwd')),
                start_ms=item.get('startDate'),
                end_ms=item.get('endDate'),
                label=item.get('keyboardPwdName')
            )
            for item in payload.get('list', [])
        ]

    def get_status(self, lock_id):
        payload = self._post('/v3/lock/detail', self._signed(lock_id))
        return LockStatus(
            online=bool(payload.get('hasGateway')),
            battery_level=payload.get('electricQuantity')
        )

    def list_unlock_records(self, lock_id, start_ms, end_ms):
        payload = self._post('/v3/lockRecord/list', self._signed(
            lock_id,
            startDate=start_ms,
            endDate=end_ms,
            pageNo=1,
            pageSize=100
        ))
        return [
            UnlockRecord(
                unlock_time_ms=item.get('lockDate'),
                method=RECORD_METHODS.get(item.get('recordType'), 'Other'),
                passcode=item.get('keyboardPwd') or None,
                username=item.get('username'),
                success=item.get('success', 1) == 1
            )
            for item in payload.get('list', [])
        ]
