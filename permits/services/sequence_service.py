from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from permits.core.config import get_settings
from permits.models.application_sequence import ApplicationSequence


class SequenceService:
    """
    Application numbers: <year>-<zero padded counter>, e.g. 2026-0001.

    Runs inside the caller's transaction. The counter row is locked FOR
    UPDATE, so two assessing transactions in the same year serialize on it
    and never hand out the same number.
    """

    def _locked_row(self, db: Session, period: str) -> Optional[ApplicationSequence]:
        return db.execute(
            select(ApplicationSequence)
            .where(ApplicationSequence.period == period)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_application_number(self, db: Session, *, year: Optional[int] = None) -> str:
        period = str(year or datetime.now(timezone.utc).year)
        width = get_settings().application_number_width

        row = self._locked_row(db, period)
        if row is None:
            # first number of the period; a concurrent insert loses on the unique key
            try:
                with db.begin_nested():
                    db.add(ApplicationSequence(period=period, current_value=0))
            except IntegrityError:
                pass
            row = self._locked_row(db, period)

        row.current_value = int(row.current_value) + 1
        db.flush()
        return f"{period}-{row.current_value:0{width}d}"
