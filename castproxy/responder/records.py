"""Synthesize mDNS answers that advertise a single receiver."""

import hashlib
import re

from dnslib import CLASS, PTR, QTYPE, RR, SRV, TXT, A, DNSHeader, DNSRecord

from castproxy.config import CAST_PORT, RECORD_TTL, SERVICE_NAME
from castproxy.discovery.models import DeviceRecord

INSTANCE_PREFIX = "Chromecast-"
_LABEL_SAFE = re.compile(r"^[a-z0-9]{1,52}$")  # 63-byte label limit minus the prefix
TXT_STRING_MAX = 255  # bytes per TXT character-string


def instance_name(uuid: str) -> str:
    """Service instance label derived only from the device uuid."""
    ident = uuid.replace("-", "").lower()
    if not _LABEL_SAFE.match(ident):
        ident = hashlib.sha256(uuid.encode("utf-8")).hexdigest()[:32]
    return f"{INSTANCE_PREFIX}{ident}"


def truncate_utf8(text: str, limit: int) -> str:
    """Longest prefix of ``text`` that encodes to at most ``limit`` UTF-8 bytes."""
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text
    return encoded[:limit].decode("utf-8", errors="ignore")


def txt_entries(device: DeviceRecord) -> list[str]:
    return [
        truncate_utf8(f"id={device.uuid}", TXT_STRING_MAX),
        truncate_utf8(f"fn={device.friendly_name}", TXT_STRING_MAX),
        "md=Chromecast",
        "ve=05",
        "ic=/setup/icon.png",
    ]


def build_response(
    device: DeviceRecord,
    service_name: str = SERVICE_NAME,
    ttl: int = RECORD_TTL,
    port: int = CAST_PORT,
) -> bytes:
    """One complete response packet (PTR answer with TXT, SRV and A additionals)."""
    service = service_name.rstrip(".")
    instance = instance_name(device.uuid)
    instance_fqdn = f"{instance}.{service}"
    host = f"{instance}.local"

    # id 0, QR and AA set, RD clear: flags 0x8400
    reply = DNSRecord(DNSHeader(id=0, qr=1, aa=1, rd=0))
    reply.add_answer(
        RR(rname=service, rtype=QTYPE.PTR, rclass=CLASS.IN, ttl=ttl, rdata=PTR(instance_fqdn))
    )
    reply.add_ar(
        RR(rname=instance_fqdn, rtype=QTYPE.TXT, rclass=CLASS.IN, ttl=ttl, rdata=TXT(txt_entries(device)))
    )
    reply.add_ar(
        RR(rname=instance_fqdn, rtype=QTYPE.SRV, rclass=CLASS.IN, ttl=ttl, rdata=SRV(0, 0, port, host))
    )
    reply.add_ar(
        RR(rname=host, rtype=QTYPE.A, rclass=CLASS.IN, ttl=ttl, rdata=A(device.ip))
    )
    return reply.pack()
