"""JSON file persistence shared by the pairing and device stores."""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from castproxy.errors import StoreReadError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Interpret naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def read_json(path: Path, missing_ok: bool = False, default: Any = None) -> Any:
    """Load a JSON document.

    A missing file raises :class:`StoreReadError` unless ``missing_ok`` is set,
    in which case ``default`` is returned. Unreadable or corrupt files always
    raise.
    """
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        if missing_ok:
            return default
        raise StoreReadError(f"{path} does not exist") from e
    except (OSError, ValueError) as e:
        raise StoreReadError(f"Failed to read {path}: {e}") from e


def write_json(path: Path, data: Any) -> None:
    """Replace ``path`` atomically so readers never see a partial document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
