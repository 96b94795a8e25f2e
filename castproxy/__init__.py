"""Guest-scoped mDNS discovery proxy for cast receivers."""

__version__ = "1.0.0"
