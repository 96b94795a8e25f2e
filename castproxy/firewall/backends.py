"""Firewall capabilities that open a guest -> device path for a limited time."""

import asyncio
import logging
from typing import Protocol

from castproxy.config import FIREWALL_BACKEND, IPSET_NAME
from castproxy.errors import FirewallError

logger = logging.getLogger(__name__)


class Firewall(Protocol):
    async def allow(self, guest_address: str, device_address: str, ttl: int) -> None:
        """Allow guest -> device for ``ttl`` seconds. Idempotent. Raises FirewallError."""
        ...


class IpsetFirewall:
    """Adds ``guest,device`` entries with a timeout to a ``hash:ip,ip`` ipset.

    Expiry is left to the kernel's ipset timeout. ``-exist`` turns a
    repeated add into a timeout refresh instead of an error.
    """

    def __init__(self, set_name: str = IPSET_NAME, binary: str = "ipset") -> None:
        self.set_name = set_name
        self.binary = binary

    def command(self, guest_address: str, device_address: str, ttl: int) -> list[str]:
        return [
            self.binary, "add", self.set_name,
            f"{guest_address},{device_address}",
            "timeout", str(int(ttl)),
            "-exist",
        ]

    async def allow(self, guest_address: str, device_address: str, ttl: int) -> None:
        cmd = self.command(guest_address, device_address, ttl)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()
        except OSError as e:
            raise FirewallError(f"Could not run {self.binary}: {e}") from e

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise FirewallError(f"{' '.join(cmd)} exited with {proc.returncode}: {detail}")


class NullFirewall:
    """Logs allow requests without touching the host firewall."""

    async def allow(self, guest_address: str, device_address: str, ttl: int) -> None:
        logger.info(f"[no firewall] would allow {guest_address} -> {device_address} for {ttl}s")


def create_firewall(backend: str = FIREWALL_BACKEND) -> Firewall:
    if backend == "ipset":
        return IpsetFirewall()
    if backend == "none":
        return NullFirewall()
    raise ValueError(f"Unknown firewall backend: {backend!r}")
