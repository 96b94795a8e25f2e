"""Registry of known cast receivers and their room assignment."""

import logging
import threading
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from castproxy.config import DEVICES_FILE
from castproxy.discovery.models import DeviceRecord
from castproxy.errors import StoreReadError
from castproxy.storage import read_json, write_json

logger = logging.getLogger(__name__)


class DeviceRegistry(Protocol):
    def list_by_room(self, room: str) -> list[DeviceRecord]:
        """Devices whose room equals ``room`` exactly. Raises StoreReadError."""
        ...


class JsonDeviceRegistry:
    """Devices stored as a JSON list, deduplicated by uuid."""

    def __init__(self, path: Path = DEVICES_FILE) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def _load(self, missing_ok: bool) -> list[dict]:
        data = read_json(self._path, missing_ok=missing_ok, default=[])
        if not isinstance(data, list):
            raise StoreReadError(f"{self._path} does not contain a JSON list")
        return data

    def list_all(self, missing_ok: bool = True) -> list[DeviceRecord]:
        devices = []
        for entry in self._load(missing_ok):
            try:
                devices.append(DeviceRecord.model_validate(entry))
            except (ValidationError, TypeError) as e:
                logger.warning(f"Skipping corrupt device entry: {e}")
        return devices

    def list_by_room(self, room: str) -> list[DeviceRecord]:
        return [d for d in self.list_all(missing_ok=False) if d.room == room]

    def get(self, uuid: str) -> Optional[DeviceRecord]:
        return next((d for d in self.list_all() if d.uuid == uuid), None)

    def upsert(self, device: DeviceRecord) -> DeviceRecord:
        """Insert or merge ``device``.

        An existing room assignment survives unless ``device.room`` is set.
        """
        with self._lock:
            entries = self._load(missing_ok=True)
            update = device.model_dump(mode="json")
            if device.room is None:
                update.pop("room")

            for i, entry in enumerate(entries):
                if isinstance(entry, dict) and entry.get("uuid") == device.uuid:
                    entries[i] = {**entry, **update}
                    merged = entries[i]
                    break
            else:
                merged = device.model_dump(mode="json")
                entries.append(merged)

            write_json(self._path, entries)
        return DeviceRecord.model_validate(merged)

    def assign_room(self, uuid: str, room: Optional[str]) -> Optional[DeviceRecord]:
        """Set or clear the room of a known device. Returns None for an unknown uuid."""
        with self._lock:
            entries = self._load(missing_ok=True)
            for entry in entries:
                if isinstance(entry, dict) and entry.get("uuid") == uuid:
                    entry["room"] = room
                    write_json(self._path, entries)
                    logger.info(f"Assigned device {uuid} to room {room}")
                    return DeviceRecord.model_validate(entry)
        return None
