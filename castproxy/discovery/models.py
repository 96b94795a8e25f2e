"""Pydantic models for known cast receivers."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from castproxy.storage import utcnow


class DeviceRecord(BaseModel):
    """A receiver on the device segment."""
    uuid: str
    friendly_name: str
    ip: str  # device-segment IPv4 address
    room: Optional[str] = None  # None means unassigned
    last_seen: datetime = Field(default_factory=utcnow)
