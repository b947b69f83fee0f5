"""EverOn chat linking service."""

__version__ = "0.1.0"
