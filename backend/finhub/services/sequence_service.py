"""
Document Number Service - Gap-tolerant, collision-free document numbers
"""
import logging
import re

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from finhub.core.exceptions import ConcurrentModification
from finhub.models import DocumentSequence

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5


def format_number(prefix: str, year: int, value: int) -> str:
    return f"{prefix}-{year}-{value:04d}"


class DocumentNumberService:
    """
    Allocates ``PREFIX-YYYY-NNNN`` numbers from a counter row per
    (company, prefix, year).

    The counter is bumped with a single UPDATE, which keeps the row locked
    until the caller's transaction ends. Two transactions can therefore never
    read the same value; a rolled-back transaction releases its value with it.
    """

    def __init__(self, db: Session):
        self.db = db

    def _sequence_filter(self, company_id: int, prefix: str, year: int):
        return (
            DocumentSequence.company_id == company_id,
            DocumentSequence.prefix == prefix,
            DocumentSequence.year == year,
        )

    def highest_existing(self, number_column, company_column, company_id: int, prefix: str, year: int) -> int:
        """Highest NNNN already stored for the tenant/prefix/year, 0 if none"""
        numbers = self.db.query(number_column)\
            .filter(company_column == company_id, number_column.like(f"{prefix}-{year}-%"))\
            .all()
        pattern = re.compile(rf"^{re.escape(prefix)}-{year}-(\d+)$")
        highest = 0
        for (number,) in numbers:
            match = pattern.match(number or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return highest

    def next_value(self, company_id: int, prefix: str, year: int, number_column=None, company_column=None) -> int:
        criteria = self._sequence_filter(company_id, prefix, year)

        for attempt in range(1, MAX_ATTEMPTS + 1):
            result = self.db.execute(
                update(DocumentSequence)
                .where(*criteria)
                .values(last_value=DocumentSequence.last_value + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                return self.db.query(DocumentSequence.last_value).filter(*criteria).scalar()

            # First number for this tenant/prefix/year
            seed = 0
            if number_column is not None:
                seed = self.highest_existing(number_column, company_column, company_id, prefix, year)
            try:
                with self.db.begin_nested():
                    self.db.add(DocumentSequence(
                        company_id=company_id,
                        prefix=prefix,
                        year=year,
                        last_value=seed + 1
                    ))
                return seed + 1
            except IntegrityError:
                logger.debug(
                    f"Sequence {prefix}/{year} for company {company_id} created concurrently "
                    f"(attempt {attempt}), retrying"
                )

        raise ConcurrentModification("Could not allocate a document number, please retry")

    def next_number(self, company_id: int, prefix: str, year: int, number_column=None, company_column=None) -> str:
        value = self.next_value(company_id, prefix, year, number_column, company_column)
        return format_number(prefix, year, value)
