"""
Local storage for this device's sessions.

Sessions are kept as one JSON file each, written atomically.
"""

from .store import LocalSessionStore, LocalUnitOfWork

__all__ = ["LocalSessionStore", "LocalUnitOfWork"]
