"""
approval_kernel.db.base -- Declarative base shared by every ORM model.

Lowest layer of the kernel: models import from here, and this module
imports nothing from the rest of the package.

Column conventions:
    - Primary keys are uuid4 values stored as ``String(36)`` so the same
      schema runs on PostgreSQL and SQLite.
    - Amounts and ceilings are ``Numeric(38, 9)``; never floats.
    - Timestamps are timezone-aware.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID column persisted as its 36-character canonical text.

    Accepts either a ``UUID`` or a UUID string on the way in, so an id
    taken from a URL or a log line binds to the same row.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, PyUUID):
            value = PyUUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        Decimal: Numeric(38, 9, asdecimal=True),
        datetime: DateTime(timezone=True),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)
