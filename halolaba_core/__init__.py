"""HaloLaba offline-first data core."""

__version__ = "0.1.0"
