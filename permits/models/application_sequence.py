#permits/models/application_sequence.py
from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from permits.db.base import Base


class ApplicationSequence(Base):
    """
    One counter row per period (year). Allocation locks the row, so numbers
    are unique and never go backwards within a period.
    """

    __tablename__ = "application_sequences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    period: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
