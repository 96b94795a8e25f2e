"""Smoke tests for application wiring."""

from castproxy import main


def test_routes_registered():
    paths = {getattr(route, "path", None) for route in main.app.router.routes}
    paths |= {route.path for route in main.router.routes}
    assert "/pair" in paths
    assert "/api/rooms/{room}/pairing-token" in paths
    assert "/api/devices/{uuid}/room" in paths


def test_listener_dispatches_to_responder():
    assert main.listener._handler == main.responder.handle_datagram
