"""Fantasy Premier League data synchronization backend."""

__version__ = "0.1.0"
