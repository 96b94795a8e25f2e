"""
Device-segment browser.

Watches for cast receivers on the device segment with zeroconf and keeps
the device registry current. Room assignment is never touched here.
"""

import asyncio
import ipaddress
import logging
from typing import Optional

from zeroconf import IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from castproxy.config import DEVICE_INTERFACE_IP, DEVICE_SUBNET, SERVICE_NAME
from castproxy.discovery.models import DeviceRecord
from castproxy.discovery.registry import JsonDeviceRegistry

logger = logging.getLogger(__name__)

RESOLVE_TIMEOUT_MS = 3000


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def pick_address(addresses: list[str], subnet: str = DEVICE_SUBNET) -> Optional[str]:
    """First address inside the device subnet; None if there is none."""
    network = ipaddress.ip_network(subnet, strict=False)
    for addr in addresses:
        try:
            if ipaddress.ip_address(addr) in network:
                return addr
        except ValueError:
            continue
    return None


def device_from_service(info, subnet: str = DEVICE_SUBNET) -> Optional[DeviceRecord]:
    """Build a registry entry from a resolved ``_googlecast`` service, or None."""
    props = {_text(k): _text(v) for k, v in (info.properties or {}).items()}
    uuid = props.get("id")
    if not uuid:
        logger.warning(f"Service {info.name} has no id in its TXT record")
        return None

    ip = pick_address(info.parsed_addresses(IPVersion.V4Only), subnet)
    if ip is None:
        logger.warning(f"Ignoring service {info.name}: no address in {subnet}")
        return None

    friendly_name = props.get("fn") or info.name.split(".", 1)[0]
    return DeviceRecord(uuid=uuid, friendly_name=friendly_name, ip=ip)


class DeviceBrowser:
    """Browses the device segment and upserts every receiver it resolves."""

    def __init__(
        self,
        registry: JsonDeviceRegistry,
        interface_ip: Optional[str] = DEVICE_INTERFACE_IP,
        subnet: str = DEVICE_SUBNET,
        service_type: str = SERVICE_NAME,
    ) -> None:
        self._registry = registry
        self._interface_ip = interface_ip
        self._subnet = subnet
        self._service_type = service_type.rstrip(".") + "."
        self._aiozc: Optional[AsyncZeroconf] = None
        self._browser: Optional[AsyncServiceBrowser] = None
        self._tasks: set[asyncio.Task] = set()

    async def start(self) -> None:
        if self._aiozc is not None:
            return
        if not self._interface_ip:
            raise RuntimeError("Device browser needs the device-segment interface address")
        logger.info(f"Browsing for {self._service_type} on {self._interface_ip}")
        self._aiozc = AsyncZeroconf(interfaces=[self._interface_ip])
        self._browser = AsyncServiceBrowser(
            self._aiozc.zeroconf, [self._service_type], handlers=[self._on_service_state_change]
        )

    async def stop(self) -> None:
        if self._browser is not None:
            await self._browser.async_cancel()
            self._browser = None
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._aiozc is not None:
            await self._aiozc.async_close()
            self._aiozc = None
        logger.info("Device browser stopped")

    def _on_service_state_change(
        self, zeroconf: Zeroconf, service_type: str, name: str, state_change: ServiceStateChange
    ) -> None:
        if state_change is ServiceStateChange.Removed:
            logger.debug(f"Receiver went away: {name}")
            return
        task = asyncio.ensure_future(self.resolve(zeroconf, service_type, name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def resolve(self, zeroconf: Zeroconf, service_type: str, name: str) -> Optional[DeviceRecord]:
        info = AsyncServiceInfo(service_type, name)
        if not await info.async_request(zeroconf, RESOLVE_TIMEOUT_MS):
            logger.warning(f"Could not resolve {name}")
            return None

        device = device_from_service(info, self._subnet)
        if device is None:
            return None
        try:
            saved = await asyncio.to_thread(self._registry.upsert, device)
        except Exception as e:
            logger.error(f"Failed to save device {device.uuid}: {e}")
            return None
        logger.info(f"Saved receiver {saved.friendly_name} ({saved.ip}), room {saved.room}")
        return saved
