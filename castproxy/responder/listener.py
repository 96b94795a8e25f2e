"""
Multicast listener bound to the guest segment.

Owns the one mDNS socket, hands every datagram to a handler as its own
task, and sends replies by unicast only.
"""

import asyncio
import logging
import socket
import sys
from typing import Awaitable, Callable, Optional

from castproxy.config import GUEST_INTERFACE_IP, GUEST_INTERFACE_NAME, MDNS_ADDR, MDNS_PORT

logger = logging.getLogger(__name__)

Address = tuple[str, int]
SendFn = Callable[[bytes, Address], None]
Handler = Callable[[bytes, Address, SendFn], Awaitable[object]]

# Linux only; None where the platform has no such option.
IP_MULTICAST_ALL = getattr(socket, "IP_MULTICAST_ALL", 49 if sys.platform.startswith("linux") else None)


class MulticastProtocol(asyncio.DatagramProtocol):
    """asyncio UDP protocol that forwards datagrams to the listener."""

    def __init__(self, listener: "MulticastListener"):
        self.listener = listener

    def datagram_received(self, data: bytes, addr: Address) -> None:
        self.listener.dispatch(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"mDNS socket error: {exc}")


class MulticastListener:
    """Receives mDNS queries on one interface and unicasts replies."""

    def __init__(
        self,
        handler: Handler,
        interface_ip: str = GUEST_INTERFACE_IP,
        group: str = MDNS_ADDR,
        port: int = MDNS_PORT,
        interface_name: Optional[str] = GUEST_INTERFACE_NAME,
    ) -> None:
        self._handler = handler
        self._interface_ip = interface_ip
        self._group = group
        self._port = port
        self._interface_name = interface_name
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._sock: Optional[socket.socket] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._transport is not None

    def _membership(self) -> bytes:
        return socket.inet_aton(self._group) + socket.inet_aton(self._interface_ip)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            except OSError:
                pass
        if self._interface_name and hasattr(socket, "SO_BINDTODEVICE"):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BINDTODEVICE, self._interface_name.encode())
        sock.setblocking(False)
        sock.bind(("0.0.0.0", self._port))

        # Only the guest interface joins the group; without IP_MULTICAST_ALL=0
        # Linux would also deliver groups joined elsewhere on the host.
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, self._membership())
        if IP_MULTICAST_ALL is not None:
            try:
                sock.setsockopt(socket.IPPROTO_IP, IP_MULTICAST_ALL, 0)
            except OSError:
                logger.debug("IP_MULTICAST_ALL not supported on this platform")
        return sock

    async def start(self) -> None:
        """Bind the socket and join the multicast group on the guest interface."""
        if self._transport is not None:
            return
        logger.info(f"Joining {self._group}:{self._port} on {self._interface_ip}")

        loop = asyncio.get_running_loop()
        sock = self._create_socket()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: MulticastProtocol(self),
            sock=sock,
        )
        self._sock = sock
        self._transport = transport
        logger.info("mDNS listener started")

    async def stop(self) -> None:
        """Leave the group, close the socket and abandon in-flight work."""
        if self._transport is None:
            return
        if self._sock is not None:
            try:
                self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, self._membership())
            except OSError:
                pass
        self._transport.close()
        self._transport = None
        self._sock = None

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("mDNS listener stopped")

    def dispatch(self, data: bytes, addr: Address) -> asyncio.Task:
        """Handle one datagram as an independent task."""
        task = asyncio.get_running_loop().create_task(self._run(data, addr))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, data: bytes, addr: Address) -> None:
        try:
            await self._handler(data, addr, self.send)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to handle datagram from {addr[0]}:{addr[1]}: {e}", exc_info=True)

    def send(self, data: bytes, addr: Address) -> None:
        """Unicast ``data`` to ``addr``. Never used for multicast."""
        if self._transport is None:
            raise RuntimeError("Listener not started")
        self._transport.sendto(data, addr)
