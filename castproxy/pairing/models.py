"""Pydantic models for guest pairings."""

from datetime import datetime

from pydantic import BaseModel, field_validator

from castproxy.storage import as_utc


class PairingRecord(BaseModel):
    """Authorizes one guest address to cast to one room until ``expires_at``."""
    guest_address: str
    room: str
    paired_at: datetime
    expires_at: datetime
    token_used: str = ""  # audit only

    @field_validator("paired_at", "expires_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at


class PairingToken(BaseModel):
    """A short-lived code shown on a room display and scanned by guests."""
    token: str
    room: str
    created_at: datetime
    expires_at: datetime

    @field_validator("created_at", "expires_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at
