"""Application-wide configuration constants.

Every value can be overridden with a ``CASTPROXY_<NAME>`` environment variable.
"""

import os
from pathlib import Path


def _env(name: str, default: str) -> str:
    return os.environ.get(f"CASTPROXY_{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    return _env(name, "1" if default else "0").strip().lower() in ("1", "true", "yes", "on")


# --- Network segments ---
GUEST_INTERFACE_IP = _env("GUEST_INTERFACE_IP", "192.168.20.1")
GUEST_INTERFACE_NAME = _env("GUEST_INTERFACE_NAME", "") or None  # e.g. "vlan20"
DEVICE_INTERFACE_IP = _env("DEVICE_INTERFACE_IP", "") or None
DEVICE_SUBNET = _env("DEVICE_SUBNET", "192.168.25.0/24")

# --- mDNS ---
MDNS_ADDR = _env("MDNS_ADDR", "224.0.0.251")
MDNS_PORT = int(_env("MDNS_PORT", "5353"))
SERVICE_NAME = _env("SERVICE_NAME", "_googlecast._tcp.local")
CAST_PORT = int(_env("CAST_PORT", "8009"))
RECORD_TTL = int(_env("RECORD_TTL", "120"))  # seconds, kept short so revocations age out
STORE_READ_TIMEOUT = float(_env("STORE_READ_TIMEOUT", "2.0"))  # seconds

# --- Firewall ---
FIREWALL_BACKEND = _env("FIREWALL_BACKEND", "ipset")  # "ipset" | "none"
IPSET_NAME = _env("IPSET_NAME", "guest-cast")
FIREWALL_RULE_TTL = int(_env("FIREWALL_RULE_TTL", str(4 * 60 * 60)))  # seconds

# --- Storage ---
DATA_DIR = Path(_env("DATA_DIR", "data"))
PAIRINGS_FILE = DATA_DIR / "pairings.json"
DEVICES_FILE = DATA_DIR / "devices.json"
TOKENS_FILE = DATA_DIR / "tokens.json"

# --- Pairing ---
PAIRING_TOKEN_TTL = int(_env("PAIRING_TOKEN_TTL", str(15 * 60)))  # seconds
PAIRING_TTL = int(_env("PAIRING_TTL", str(12 * 60 * 60)))  # seconds
PAIRING_BASE_URL = _env("PAIRING_BASE_URL", f"http://{GUEST_INTERFACE_IP}:3000")
TRUST_FORWARDED_FOR = _env_bool("TRUST_FORWARDED_FOR", False)

# --- API ---
API_HOST = _env("API_HOST", "0.0.0.0")
API_PORT = int(_env("API_PORT", "3000"))

DEVICE_DISCOVERY_ENABLED = _env_bool("DEVICE_DISCOVERY_ENABLED", True)
LOG_LEVEL = _env("LOG_LEVEL", "INFO").upper()
