"""
Module: ledger_kernel.db.base
Responsibility: Declarative base for the ledger's ORM models.
Architecture position: Kernel > DB.  Every model module imports from here;
    this module imports nothing above ``db/``.

Column conventions (via ``type_annotation_map``):
    - ``id``: uuid4 primary key stored as String(36).
    - ``Decimal``: Numeric(18, 2).  Amounts pass through round_money()
      before they are assigned, never float.
    - ``datetime``: UTCDateTime, aware and UTC on every backend.
    - ``int``: BigInteger unless the column says otherwise.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ledger_kernel.db.types import UTCDateTime, UUIDString

__all__ = ["Base", "TimestampedBase", "UTCDateTime", "UUIDString"]


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: UTCDateTime(),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TimestampedBase(Base):
    """
    Adds ``created_at``, set by the database on insert.

    ``created_at`` is when the row was written; the business time of a
    movement is its ``fecha``, which comes from the service's clock.  The
    immutability listeners ignore ``created_at``.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )
