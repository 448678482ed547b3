"""Named counters behind ``SequenceService``; one row per sequence."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    # Last value handed out; 0 until the first allocation.
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
