"""
Module: ledger_kernel.models.sequence
Responsibility: Named counter rows backing gapless sequence allocation.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "journal_entry:<tenant uuid>")
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(nullable=False, default=0)
