"""Tests for the guest-segment multicast listener."""

import asyncio
import socket
from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest

from castproxy.responder import listener as listener_module
from castproxy.responder.listener import IP_MULTICAST_ALL, MulticastListener, MulticastProtocol


class TestListenerDefaults:
    def test_not_running_initially(self):
        listener = MulticastListener(AsyncMock(), interface_ip="192.168.20.1")
        assert listener.running is False

    def test_send_before_start_raises(self):
        listener = MulticastListener(AsyncMock(), interface_ip="192.168.20.1")
        with pytest.raises(RuntimeError, match="Listener not started"):
            listener.send(b"\x00", ("10.0.20.5", 5353))


class TestSocketSetup:
    def test_joins_group_on_guest_interface_only(self):
        listener = MulticastListener(AsyncMock(), interface_ip="192.168.20.1", port=5353)
        with patch.object(socket, "socket") as mock_socket_cls:
            sock = mock_socket_cls.return_value
            assert listener._create_socket() is sock

        sock.bind.assert_called_once_with(("0.0.0.0", 5353))
        mreq = socket.inet_aton("224.0.0.251") + socket.inet_aton("192.168.20.1")
        assert call(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq) in sock.setsockopt.call_args_list
        joins = [c for c in sock.setsockopt.call_args_list if c.args[1] == socket.IP_ADD_MEMBERSHIP]
        assert len(joins) == 1

    @pytest.mark.skipif(IP_MULTICAST_ALL is None, reason="Linux only")
    def test_disables_multicast_all(self):
        listener = MulticastListener(AsyncMock(), interface_ip="192.168.20.1")
        with patch.object(socket, "socket") as mock_socket_cls:
            listener._create_socket()
        sock = mock_socket_cls.return_value
        assert call(socket.IPPROTO_IP, IP_MULTICAST_ALL, 0) in sock.setsockopt.call_args_list

    def test_skips_multicast_all_where_unsupported(self, monkeypatch):
        monkeypatch.setattr(listener_module, "IP_MULTICAST_ALL", None)
        listener = MulticastListener(AsyncMock(), interface_ip="192.168.20.1")
        with patch.object(socket, "socket") as mock_socket_cls:
            listener._create_socket()
        sock = mock_socket_cls.return_value
        options = [c.args[:2] for c in sock.setsockopt.call_args_list]
        assert (socket.IPPROTO_IP, 49) not in options
        assert (socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP) in options

    @pytest.mark.skipif(not hasattr(socket, "SO_BINDTODEVICE"), reason="Linux only")
    def test_binds_to_named_interface(self):
        listener = MulticastListener(AsyncMock(), interface_ip="192.168.20.1", interface_name="vlan20")
        with patch.object(socket, "socket") as mock_socket_cls:
            listener._create_socket()
        sock = mock_socket_cls.return_value
        assert call(socket.SOL_SOCKET, socket.SO_BINDTODEVICE, b"vlan20") in sock.setsockopt.call_args_list


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        listener = MulticastListener(AsyncMock(), interface_ip="127.0.0.1", port=0)
        plain = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        plain.setblocking(False)
        plain.bind(("127.0.0.1", 0))

        with patch.object(listener, "_create_socket", return_value=plain):
            await listener.start()
            assert listener.running
            await listener.start()  # already started
        await listener.stop()
        assert not listener.running
        await listener.stop()  # already stopped

    @pytest.mark.asyncio
    async def test_send_is_unicast_to_source(self):
        listener = MulticastListener(AsyncMock(), interface_ip="192.168.20.1")
        listener._transport = MagicMock()
        listener.send(b"answer", ("10.0.20.5", 5353))
        listener._transport.sendto.assert_called_once_with(b"answer", ("10.0.20.5", 5353))


class TestDispatch:
    @pytest.mark.asyncio
    async def test_protocol_hands_datagram_to_handler(self):
        handler = AsyncMock()
        listener = MulticastListener(handler, interface_ip="192.168.20.1")
        protocol = MulticastProtocol(listener)

        protocol.datagram_received(b"query", ("10.0.20.5", 5353))
        await asyncio.gather(*listener._tasks)

        handler.assert_awaited_once_with(b"query", ("10.0.20.5", 5353), listener.send)

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_listener(self, caplog):
        handler = AsyncMock(side_effect=[ValueError("bad packet"), None])
        listener = MulticastListener(handler, interface_ip="192.168.20.1")

        await listener.dispatch(b"one", ("10.0.20.5", 5353))
        await listener.dispatch(b"two", ("10.0.20.6", 5353))

        assert handler.await_count == 2
        assert "bad packet" in caplog.text

    @pytest.mark.asyncio
    async def test_slow_query_does_not_block_others(self):
        release = asyncio.Event()
        handled = []

        async def handler(data, addr, send):
            if addr[0] == "10.0.20.5":
                await release.wait()
            handled.append(addr[0])

        listener = MulticastListener(handler, interface_ip="192.168.20.1")
        slow = listener.dispatch(b"q", ("10.0.20.5", 5353))
        fast = listener.dispatch(b"q", ("10.0.20.6", 5353))

        await asyncio.wait_for(fast, timeout=1)
        assert handled == ["10.0.20.6"]
        assert not slow.done()

        release.set()
        await slow
        assert handled == ["10.0.20.6", "10.0.20.5"]

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_work(self):
        started = asyncio.Event()

        async def handler(data, addr, send):
            started.set()
            await asyncio.sleep(60)

        listener = MulticastListener(handler, interface_ip="192.168.20.1")
        listener._transport = MagicMock()
        task = listener.dispatch(b"q", ("10.0.20.5", 5353))
        await started.wait()

        await listener.stop()
        assert task.cancelled()
        assert listener._tasks == set()
