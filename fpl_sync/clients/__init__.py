"""Upstream API clients."""

from fpl_sync.clients.fpl import FPLClient

__all__ = ["FPLClient"]
