"""Database plumbing: declarative base, engine/session management, immutability."""

from cashup_kernel.db.base import Base, TrackedBase, UUIDString
from cashup_kernel.db.engine import Database

__all__ = [
    "Base",
    "Database",
    "TrackedBase",
    "UUIDString",
]
