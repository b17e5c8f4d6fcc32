"""Session Manager: the fleet of ProtocolSessions and the aggregated catalog."""

from .manager import CatalogEntry, SessionManager


__all__ = ["CatalogEntry", "SessionManager"]
