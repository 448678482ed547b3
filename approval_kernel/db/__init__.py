"""Database plumbing: declarative base, engine and session scope."""

from approval_kernel.db.base import Base, UUIDString

__all__ = ["Base", "UUIDString"]
