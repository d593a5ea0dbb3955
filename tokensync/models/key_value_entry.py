"""KeyValueEntry ORM — one durable entry of the key-value store.

Invariants:
    - key is the primary key ("device_token<index>" for token records)
    - value holds the opaque serialized bytes; the store never interprets them

Design Decisions:
    - LargeBinary over JSON: records use their own byte codec
"""

from datetime import datetime, timezone

from sqlalchemy import String, LargeBinary, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from tokensync.db.base import Base


class KeyValueEntry(Base):
    __tablename__ = "key_value_entries"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
