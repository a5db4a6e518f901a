"""
shopbooks_kernel.db.models -- Table holding the saved books.

The whole finance state (suppliers, accounts, journal, batches, ...) is one
JSON document under one storage key.  A save overwrites the document and
bumps ``revision``; a load restores it wholesale.  Nothing else about the
books is queryable in SQL.
"""

from datetime import datetime

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shopbooks_kernel.db.base import Base


class FinanceStateRecord(Base):
    """
    One saved finance state.

    Guarantees:
        - At most one row per ``storage_key``.
        - ``payload`` is the text of ``FinanceState.to_json()``.
        - ``revision`` starts at 1 and grows by one per save.
    """

    __tablename__ = "shopbooks_state"
    __table_args__ = (UniqueConstraint("storage_key", name="uq_shopbooks_state_key"),)

    storage_key: Mapped[str] = mapped_column(String(128))
    payload: Mapped[str] = mapped_column(Text)
    revision: Mapped[int] = mapped_column(default=1)
    saved_at: Mapped[datetime]

    def __repr__(self) -> str:
        return f"<FinanceStateRecord {self.storage_key!r} rev={self.revision}>"
