"""Open firewall paths for devices that were just advertised to a guest."""

import logging

from castproxy.config import FIREWALL_RULE_TTL
from castproxy.firewall.backends import Firewall

logger = logging.getLogger(__name__)


class FirewallSynchronizer:
    """Best-effort allow requests.

    A failure is logged and reported as False; the discovery answer that
    preceded it is never retracted.
    """

    def __init__(self, firewall: Firewall, rule_ttl: int = FIREWALL_RULE_TTL) -> None:
        self._firewall = firewall
        self.rule_ttl = rule_ttl

    async def sync(self, guest_address: str, device_address: str) -> bool:
        try:
            await self._firewall.allow(guest_address, device_address, self.rule_ttl)
        except Exception as e:
            logger.warning(f"Firewall allow {guest_address} -> {device_address} failed: {e}")
            return False
        logger.debug(f"Firewall allows {guest_address} -> {device_address} for {self.rule_ttl}s")
        return True
