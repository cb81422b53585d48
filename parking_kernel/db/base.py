"""
Module: parking_kernel.db.base
Responsibility: Declarative base for all ORM models.  Provides the string
    UUID primary key convention and a type annotation map so that every
    model gets the same column types for money and timestamps.
Architecture position: Kernel > DB.  Lowest-level import target of the
    persistence layer; must not import models/, services/ or stores/.

Invariants enforced:
    - Primary keys are uuid4 strings (String(36)).
    - Decimal maps to Numeric(14, 2): 2-place money, never float.
    - datetime maps to UTCDateTime: stored as UTC, always loaded aware,
      on every backend (SQLite drops tzinfo otherwise).
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import uuid4

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from parking_kernel.db.types import COLUMN_TYPES


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime column.

    Guarantees:
        - process_bind_param: aware datetime -> UTC on INSERT/UPDATE;
          naive values are refused.
        - process_result_value: loaded values are UTC-aware.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime cannot be stored")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """
    Declarative base for all parking models.

    Guarantees:
        - ``id`` is a uuid4 string unless the caller supplies one (domain
          objects carry their own ids).
        - Decimal columns are Numeric(14, 2).
        - datetime columns are UTC-aware.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(14, 2),
        datetime: UTCDateTime(),
        str: String(255),
        **COLUMN_TYPES,
    }

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
