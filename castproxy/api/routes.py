"""REST API for pairing guests with rooms and managing receivers."""

import html
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from castproxy.config import PAIRING_BASE_URL, TRUST_FORWARDED_FOR
from castproxy.errors import PairingError, StoreReadError
from castproxy.storage import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

# These will be injected by main.py at startup
_pairing_service = None
_device_registry = None


def init_routes(pairing_service, device_registry) -> None:
    """Inject service dependencies into the routes module."""
    global _pairing_service, _device_registry
    _pairing_service = pairing_service
    _device_registry = device_registry


def client_address(request: Request, trust_forwarded_for: Optional[bool] = None) -> str:
    """Guest IPv4 address of the caller."""
    if trust_forwarded_for is None:
        trust_forwarded_for = TRUST_FORWARDED_FOR
    address = ""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        address = forwarded.split(",")[0].strip()
    if not address and request.client is not None:
        address = request.client.host
    # IPv4-mapped IPv6 from dual-stack sockets
    if address.startswith("::ffff:"):
        address = address[len("::ffff:"):]
    return address


# --- Pairing ---

@router.post("/api/rooms/{room}/pairing-token")
async def create_pairing_token(room: str):
    """Issue a token for a room display to show as a QR code."""
    token = _pairing_service.issue_token(room)
    return {
        "room": room,
        "token": token.token,
        "pairing_url": f"{PAIRING_BASE_URL}/pair?token={token.token}",
        "expires_at": token.expires_at.isoformat(),
    }


SUCCESS_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>Pairing Successful</title>
  </head>
  <body style="font-family: sans-serif; text-align: center; padding: 50px 20px;">
    <h1>Pairing Successful!</h1>
    <p>Room {room}</p>
    <p>You can now cast to the TV in this room.</p>
    <p>Open any Cast-enabled app and look for the Cast button.</p>
  </body>
</html>
"""


@router.get("/pair", response_class=HTMLResponse)
async def pair(request: Request, token: str = ""):
    """Redeem a scanned token for the connecting guest."""
    guest = client_address(request)
    logger.info(f"Pairing request from {guest}")
    if not guest:
        raise HTTPException(status_code=400, detail="Cannot determine client address")

    try:
        record = _pairing_service.redeem(token, guest)
    except PairingError as e:
        logger.info(f"Pairing from {guest} refused: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except StoreReadError as e:
        logger.error(f"Pairing store unavailable: {e}")
        raise HTTPException(status_code=503, detail="Pairing temporarily unavailable")

    return HTMLResponse(SUCCESS_PAGE.format(room=html.escape(record.room)))


@router.get("/api/pairings")
async def list_pairings():
    pairings = _pairing_service.pairings.list_active()
    return {"pairings": [p.model_dump(mode="json") for p in pairings]}


@router.delete("/api/pairings/{guest_address}")
async def revoke_pairing(guest_address: str):
    if not _pairing_service.pairings.revoke(guest_address):
        raise HTTPException(status_code=404, detail="Pairing not found")
    return {"status": "revoked"}


@router.get("/api/status")
async def status():
    now = utcnow()
    try:
        return {
            "active_pairings": len(_pairing_service.pairings.list_active(now)),
            "active_tokens": _pairing_service.tokens.count_active(now),
            "devices": len(_device_registry.list_all()),
        }
    except StoreReadError as e:
        raise HTTPException(status_code=503, detail=str(e))


# --- Devices ---

class RoomAssignment(BaseModel):
    room: Optional[str] = None


@router.get("/api/devices")
async def list_devices():
    devices = _device_registry.list_all()
    return {"devices": [d.model_dump(mode="json") for d in devices]}


@router.put("/api/devices/{uuid}/room")
async def assign_room(uuid: str, body: RoomAssignment):
    device = _device_registry.assign_room(uuid, body.room)
    if device is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return device.model_dump(mode="json")
