"""In-memory collaborators for responder tests."""

import time
from datetime import datetime, timedelta, timezone

from dnslib import DNSRecord

from castproxy.discovery.models import DeviceRecord
from castproxy.errors import FirewallError, StoreReadError
from castproxy.pairing.models import PairingRecord

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
SERVICE = "_googlecast._tcp.local"


def pairing(address: str, room: str, expires_in: float = 3600) -> PairingRecord:
    return PairingRecord(
        guest_address=address,
        room=room,
        paired_at=NOW - timedelta(minutes=5),
        expires_at=NOW + timedelta(seconds=expires_in),
        token_used="f" * 32,
    )


def device(uuid: str, room, ip: str = "10.0.30.9", name: str = "Living Room TV") -> DeviceRecord:
    return DeviceRecord(uuid=uuid, friendly_name=name, ip=ip, room=room, last_seen=NOW)


def query_packet(name: str = SERVICE, qtype: str = "PTR") -> bytes:
    return DNSRecord.question(name, qtype).pack()


class FakePairingStore:
    def __init__(self, *records, error: Exception = None, delay: float = 0.0):
        self.records = {r.guest_address: r for r in records}
        self.error = error
        self.delay = delay
        self.lookups = []

    def lookup(self, address):
        self.lookups.append(address)
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return self.records.get(address)


class FakeDeviceRegistry:
    def __init__(self, *devices, error: Exception = None):
        self.devices = list(devices)
        self.error = error

    def list_by_room(self, room):
        if self.error:
            raise self.error
        return [d for d in self.devices if d.room == room]


class RecordingFirewall:
    """Keeps allow entries in a dict; re-adding refreshes the ttl."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []
        self.rules = {}

    async def allow(self, guest_address, device_address, ttl):
        self.calls.append((guest_address, device_address, ttl))
        if self.fail:
            raise FirewallError("ipset exploded")
        self.rules[(guest_address, device_address)] = ttl


class SentPackets:
    """Stand-in for the listener's unicast send."""

    def __init__(self, error: Exception = None):
        self.packets = []
        self.error = error

    def __call__(self, data, addr):
        if self.error:
            raise self.error
        self.packets.append((data, addr))

    def parsed(self):
        return [DNSRecord.parse(data) for data, _ in self.packets]


UNREADABLE = StoreReadError("data/pairings.json does not exist")
