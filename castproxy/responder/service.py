"""
Guest-scoped discovery responder.

For each query: filter -> authorize -> look up the room's devices ->
unicast one answer per device -> ask the firewall to open the path.
Any step may end the flow with nothing sent.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from castproxy.config import CAST_PORT, RECORD_TTL, SERVICE_NAME, STORE_READ_TIMEOUT
from castproxy.discovery.models import DeviceRecord
from castproxy.discovery.registry import DeviceRegistry
from castproxy.errors import MalformedQueryError
from castproxy.firewall.sync import FirewallSynchronizer
from castproxy.pairing.store import PairingStore
from castproxy.responder.authorization import AuthorizationResolver
from castproxy.responder.listener import Address, SendFn
from castproxy.responder.query import decode_query, is_relevant
from castproxy.responder.records import build_response, instance_name
from castproxy.storage import utcnow

logger = logging.getLogger(__name__)


class GuestResponder:
    """Answers cast discovery queries with the receivers of the guest's room only."""

    def __init__(
        self,
        pairings: PairingStore,
        devices: DeviceRegistry,
        firewall: FirewallSynchronizer,
        service_name: str = SERVICE_NAME,
        record_ttl: int = RECORD_TTL,
        cast_port: int = CAST_PORT,
        read_timeout: float = STORE_READ_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._devices = devices
        self._firewall = firewall
        self._resolver = AuthorizationResolver(pairings, timeout=read_timeout)
        self._service_name = service_name
        self._record_ttl = record_ttl
        self._cast_port = cast_port
        self._read_timeout = read_timeout
        self._clock = clock

    async def devices_for_room(self, room: str) -> list[DeviceRecord]:
        """Registry snapshot filtered to ``room``; any read failure yields no devices."""
        try:
            devices = await asyncio.wait_for(
                asyncio.to_thread(self._devices.list_by_room, room), self._read_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Device registry read for room {room} timed out")
            return []
        except Exception as e:
            logger.warning(f"Device registry unreadable: {e}")
            return []
        return [d for d in devices if d.room == room]

    async def handle_datagram(self, data: bytes, addr: Address, send: SendFn) -> int:
        """Process one datagram. Returns the number of devices answered."""
        now = self._clock()
        try:
            message = decode_query(data)
        except MalformedQueryError as e:
            logger.debug(f"Dropping datagram from {addr[0]}: {e}")
            return 0

        if not is_relevant(message, self._service_name):
            return 0

        guest = addr[0]
        logger.info(f"Cast query from {guest}")

        room = await self._resolver.resolve(guest, now)
        if room is None:
            logger.info(f"{guest} is not paired, ignoring")
            return 0

        devices = await self.devices_for_room(room)
        if not devices:
            logger.info(f"{guest} paired to room {room}, no devices registered")
            return 0

        answered = []
        for device in devices:
            try:
                packet = build_response(
                    device, self._service_name, ttl=self._record_ttl, port=self._cast_port
                )
            except Exception as e:
                logger.warning(f"Cannot build answer for device {device.uuid}: {e}")
                continue
            try:
                send(packet, addr)
                logger.info(f"Sent {instance_name(device.uuid)} ({device.friendly_name}) to {guest}")
            except OSError as e:
                logger.warning(f"Unicast to {guest}:{addr[1]} failed: {e}")
                continue
            answered.append(device)

        # The answers are already out; allow rules follow without rollback.
        await asyncio.gather(*(self._firewall.sync(guest, d.ip) for d in answered))
        return len(answered)
