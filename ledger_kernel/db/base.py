"""
Module: ledger_kernel.db.base
Responsibility: The declarative base every ledger table derives from:
    string-stored UUID keys, the column type map, audit columns and the
    tenant ownership column.
Architecture position: Kernel > DB.  Bottom of the import graph; the model
    modules import it and it imports nothing from the ledger.

Invariants enforced:
    - Every row has a uuid4 primary key.
    - Python ``int`` columns are BIGINT.  Money is always an integer count
      of minor units; no Numeric or float column exists.
    - Tenant-owned tables carry an indexed, NOT NULL ``tenant_id`` and no
      row belongs to more than one tenant.

Audit relevance:
    created_at/created_by_id record who wrote a row.  updated_at and
    updated_by_id are the only columns db/immutability.py lets change on a
    posted journal row.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """Python ``UUID`` in, ``UUID`` out; a 36-char string in between.

    Lets the same schema run on SQLite and PostgreSQL.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        int: BigInteger,
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when columns.

    created_at comes from the database clock on INSERT; updated_at follows
    every UPDATE.  Actor ids are nullable because closing entries are
    written by the system, not a user.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)


class TenantScopedBase(TrackedBase):
    """
    Rows owned by exactly one tenant.

    Every query on a subclass filters on ``tenant_id``, which callers
    always pass explicitly.
    """

    __abstract__ = True

    tenant_id: Mapped[PyUUID] = mapped_column(nullable=False, index=True)
