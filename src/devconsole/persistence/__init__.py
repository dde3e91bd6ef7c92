"""
Persistence
===========
SQLite-backed stores, one module per aggregate.
"""

from .database import configure, init_db, ping

__all__ = [
    "configure",
    "init_db",
    "ping",
]
