from typing import List, Dict
from pydantic import BaseModel
from datetime import date
from decimal import Decimal

from app.schemas.billing import OccurrenceResponse


class OccurrenceReport(BaseModel):
    """A window of occurrences with the amount they add up to."""
    start: date
    end: date
    count: int
    total_due: Decimal
    occurrences: List[OccurrenceResponse]


class StateTotals(BaseModel):
    count: int
    amount: Decimal


class SummaryReport(BaseModel):
    as_of: date
    by_state: Dict[str, StateTotals]
    overdue_count: int
    overdue_amount: Decimal
    due_next_7_days: Decimal
