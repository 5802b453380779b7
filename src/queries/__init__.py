"""Read-only calculations over the canonical state."""

from src.queries.totals import (
    session_totals,
    student_balance,
    totals_for_month,
    totals_in_range,
)

__all__ = [
    "session_totals",
    "student_balance",
    "totals_for_month",
    "totals_in_range",
]
