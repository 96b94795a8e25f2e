"""
Guest cast proxy: FastAPI application entry point.

Starts the guest-segment mDNS responder and the device-segment browser on
startup and serves the pairing API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from castproxy import __version__
from castproxy.api.routes import init_routes, router
from castproxy.config import (
    API_HOST,
    API_PORT,
    DEVICE_DISCOVERY_ENABLED,
    DEVICE_INTERFACE_IP,
    FIREWALL_BACKEND,
    GUEST_INTERFACE_IP,
    LOG_LEVEL,
)
from castproxy.discovery.browser import DeviceBrowser
from castproxy.discovery.registry import JsonDeviceRegistry
from castproxy.firewall.backends import create_firewall
from castproxy.firewall.sync import FirewallSynchronizer
from castproxy.pairing.store import JsonPairingStore, JsonTokenStore, PairingService
from castproxy.responder.listener import MulticastListener
from castproxy.responder.service import GuestResponder

# --- Logging ---
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- Service singletons ---
pairing_store = JsonPairingStore()
device_registry = JsonDeviceRegistry()
pairing_service = PairingService(JsonTokenStore(), pairing_store)
responder = GuestResponder(
    pairing_store,
    device_registry,
    FirewallSynchronizer(create_firewall(FIREWALL_BACKEND)),
)
listener = MulticastListener(responder.handle_datagram)
device_browser = DeviceBrowser(device_registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start/stop the responder and the device browser."""
    logger.info("Starting cast proxy services...")

    try:
        await listener.start()
        if DEVICE_DISCOVERY_ENABLED and DEVICE_INTERFACE_IP:
            await device_browser.start()
        elif DEVICE_DISCOVERY_ENABLED:
            logger.warning("CASTPROXY_DEVICE_INTERFACE_IP is not set, device discovery disabled")

        logger.info(
            f"Cast proxy ready: responder on {GUEST_INTERFACE_IP}, "
            f"API on {API_HOST}:{API_PORT}, firewall backend {FIREWALL_BACKEND}"
        )

        yield

    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise
    finally:
        logger.info("Shutting down cast proxy services...")
        await listener.stop()
        await device_browser.stop()


# --- FastAPI app ---
app = FastAPI(
    title="Guest Cast Proxy",
    version=__version__,
    lifespan=lifespan,
)

init_routes(pairing_service, device_registry)
app.include_router(router)


def run() -> None:
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
