"""Resolve a querying guest address to the room it may cast to."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from castproxy.config import STORE_READ_TIMEOUT
from castproxy.pairing.models import PairingRecord
from castproxy.pairing.store import PairingStore

logger = logging.getLogger(__name__)


def authorized_room(record: Optional[PairingRecord], now: datetime) -> Optional[str]:
    if record is None or not record.is_active(now):
        return None
    return record.room


class AuthorizationResolver:
    """Fail-closed lookup of a guest's room.

    Anything short of a readable, unexpired pairing for the exact address
    resolves to None.
    """

    def __init__(self, store: PairingStore, timeout: float = STORE_READ_TIMEOUT) -> None:
        self._store = store
        self._timeout = timeout

    async def resolve(self, address: str, now: datetime) -> Optional[str]:
        try:
            record = await asyncio.wait_for(
                asyncio.to_thread(self._store.lookup, address), self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Pairing store lookup for {address} timed out, denying")
            return None
        except Exception as e:
            logger.warning(f"Pairing store unreadable, denying {address}: {e}")
            return None

        room = authorized_room(record, now)
        if room is None and record is not None:
            logger.debug(f"Pairing for {address} expired at {record.expires_at.isoformat()}")
        return room
