"""Pairing persistence: guest pairings and the tokens that create them.

The proxy core only ever calls :meth:`PairingStore.lookup`. Everything else
in this module is the writer side used by the pairing API.
"""

import logging
import secrets
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from castproxy.config import PAIRINGS_FILE, PAIRING_TOKEN_TTL, PAIRING_TTL, TOKENS_FILE
from castproxy.errors import ExpiredTokenError, InvalidTokenError, StoreReadError
from castproxy.pairing.models import PairingRecord, PairingToken
from castproxy.storage import read_json, utcnow, write_json

logger = logging.getLogger(__name__)


class PairingStore(Protocol):
    def lookup(self, address: str) -> Optional[PairingRecord]:
        """Return the pairing for ``address`` or None. Raises StoreReadError."""
        ...


def _load_mapping(path: Path, missing_ok: bool) -> dict:
    data = read_json(path, missing_ok=missing_ok, default={})
    if not isinstance(data, dict):
        raise StoreReadError(f"{path} does not contain a JSON object")
    return data


class JsonPairingStore:
    """Pairings keyed by guest address in a JSON file, read fresh on every call."""

    def __init__(self, path: Path = PAIRINGS_FILE) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def lookup(self, address: str) -> Optional[PairingRecord]:
        entry = _load_mapping(self._path, missing_ok=False).get(address)
        if entry is None:
            return None
        try:
            return PairingRecord.model_validate({**entry, "guest_address": address})
        except (ValidationError, TypeError) as e:
            raise StoreReadError(f"Corrupt pairing for {address}: {e}") from e

    def list_active(self, now: Optional[datetime] = None) -> list[PairingRecord]:
        now = now or utcnow()
        active = []
        for address, entry in _load_mapping(self._path, missing_ok=True).items():
            try:
                record = PairingRecord.model_validate({**entry, "guest_address": address})
            except (ValidationError, TypeError) as e:
                logger.warning(f"Skipping corrupt pairing for {address}: {e}")
                continue
            if record.is_active(now):
                active.append(record)
        return active

    def add(self, record: PairingRecord) -> None:
        with self._lock:
            data = _load_mapping(self._path, missing_ok=True)
            data[record.guest_address] = record.model_dump(mode="json", exclude={"guest_address"})
            write_json(self._path, data)
        logger.info(f"Paired {record.guest_address} -> room {record.room} until {record.expires_at.isoformat()}")

    def revoke(self, address: str) -> bool:
        with self._lock:
            data = _load_mapping(self._path, missing_ok=True)
            if data.pop(address, None) is None:
                return False
            write_json(self._path, data)
        logger.info(f"Revoked pairing for {address}")
        return True


class JsonTokenStore:
    """Pairing tokens keyed by token value in a JSON file."""

    def __init__(self, path: Path = TOKENS_FILE) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def get(self, token: str) -> Optional[PairingToken]:
        entry = _load_mapping(self._path, missing_ok=True).get(token)
        if entry is None:
            return None
        try:
            return PairingToken.model_validate({**entry, "token": token})
        except (ValidationError, TypeError) as e:
            logger.warning(f"Ignoring corrupt pairing token: {e}")
            return None

    def add(self, token: PairingToken) -> None:
        with self._lock:
            data = _load_mapping(self._path, missing_ok=True)
            data[token.token] = token.model_dump(mode="json", exclude={"token"})
            write_json(self._path, data)

    def count_active(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        count = 0
        for value, entry in _load_mapping(self._path, missing_ok=True).items():
            try:
                if PairingToken.model_validate({**entry, "token": value}).is_active(now):
                    count += 1
            except (ValidationError, TypeError):
                continue
        return count


class PairingService:
    """Issues room tokens and turns a scanned token into a guest pairing."""

    def __init__(
        self,
        tokens: JsonTokenStore,
        pairings: JsonPairingStore,
        token_ttl: int = PAIRING_TOKEN_TTL,
        pairing_ttl: int = PAIRING_TTL,
    ) -> None:
        self.tokens = tokens
        self.pairings = pairings
        self._token_ttl = timedelta(seconds=token_ttl)
        self._pairing_ttl = timedelta(seconds=pairing_ttl)

    def issue_token(self, room: str, now: Optional[datetime] = None) -> PairingToken:
        now = now or utcnow()
        token = PairingToken(
            token=secrets.token_hex(16),
            room=room,
            created_at=now,
            expires_at=now + self._token_ttl,
        )
        self.tokens.add(token)
        logger.info(f"Issued pairing token for room {room}, expires {token.expires_at.isoformat()}")
        return token

    def redeem(self, token: str, guest_address: str, now: Optional[datetime] = None) -> PairingRecord:
        """Pair ``guest_address`` to the token's room.

        Tokens stay valid until they expire so that every guest in a room can
        scan the same code.
        """
        now = now or utcnow()
        issued = self.tokens.get(token)
        if issued is None:
            raise InvalidTokenError("Invalid pairing code")
        if not issued.is_active(now):
            raise ExpiredTokenError("Pairing code expired. Please scan a new QR code.")

        record = PairingRecord(
            guest_address=guest_address,
            room=issued.room,
            paired_at=now,
            expires_at=now + self._pairing_ttl,
            token_used=token,
        )
        self.pairings.add(record)
        return record
