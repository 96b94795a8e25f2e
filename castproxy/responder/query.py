"""Decode inbound mDNS datagrams and decide whether they ask for our service."""

from dnslib import QTYPE, DNSQuestion, DNSRecord

from castproxy.errors import MalformedQueryError


def normalize_name(name) -> str:
    """Lower-cased name without the trailing root dot, for label comparison."""
    return str(name).rstrip(".").lower()


def decode_query(data: bytes) -> DNSRecord:
    try:
        return DNSRecord.parse(data)
    except Exception as e:
        raise MalformedQueryError(f"Undecodable mDNS datagram ({len(data)} bytes): {e}") from e


def matching_questions(message: DNSRecord, service_name: str) -> list[DNSQuestion]:
    """PTR questions for ``service_name``. Responses never match."""
    if message.header.qr:
        return []
    wanted = normalize_name(service_name)
    return [
        q for q in message.questions
        if q.qtype == QTYPE.PTR and normalize_name(q.qname) == wanted
    ]


def is_relevant(message: DNSRecord, service_name: str) -> bool:
    return bool(matching_questions(message, service_name))
