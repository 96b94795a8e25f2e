"""Exception types shared across the proxy."""


class CastProxyError(Exception):
    """Base class for all proxy errors."""


class StoreReadError(CastProxyError):
    """A backing store could not be read (missing, unreadable or corrupt)."""


class MalformedQueryError(CastProxyError):
    """An inbound datagram could not be decoded as a DNS message."""


class FirewallError(CastProxyError):
    """The firewall backend refused or failed to install a rule."""


class PairingError(CastProxyError):
    """A pairing token could not be redeemed."""


class InvalidTokenError(PairingError):
    pass


class ExpiredTokenError(PairingError):
    pass
