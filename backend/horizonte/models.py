from __future__ import annotations
from typing import Any, Optional
from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import BigInteger, Integer, String, DateTime, JSON
from sqlalchemy.sql import func

from horizonte.db import Base


class KVEntry(Base):
    """
    Single table backing the key-value store.
    `key` holds the JSON encoding of the key tuple, so a key prefix is a
    string prefix of every key below it.
    """
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    versionstamp: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class KVVersionstamp(Base):
    """
    Single-row counter the store bumps on every committed write. It never
    goes down, even when the entry holding the highest stamp is deleted.
    """
    __tablename__ = "kv_versionstamp"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
