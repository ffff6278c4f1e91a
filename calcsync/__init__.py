"""Multi-device sync service for calculation records and parameter sets."""

__version__ = "0.1.0"
