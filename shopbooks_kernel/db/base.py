"""
shopbooks_kernel.db.base -- Declarative base for the shopbooks tables.

Every table gets a uuid4 primary key, stored with SQLAlchemy's portable
``Uuid`` type (native on PostgreSQL, CHAR(32) on SQLite), and
timezone-aware timestamps.

Kernel > DB: imports nothing from the rest of shopbooks.
"""

import uuid
from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base: uuid4 ``id`` primary key, aware datetimes."""

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        uuid.UUID: Uuid(as_uuid=True),
    }

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
