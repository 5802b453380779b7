"""
Result models for ledger calculations.

These are derived, never stored; they are recomputed from the canonical
state whenever they are needed.
"""

from pydantic import BaseModel, Field


class SessionTotals(BaseModel):
    """Money and time for one session."""
    fee: float = Field(default=0.0, description="Sum of duration x rate over rows")
    hours: float = 0.0
    total: float = Field(default=0.0, description="Fee plus bike fare")


class LedgerTotals(BaseModel):
    """Aggregates over a period."""
    total_hours: float = 0.0
    tuition_fees: float = 0.0
    bike_fare: float = 0.0
    collected: float = Field(default=0.0, description="Payments received")
    balance: float = Field(default=0.0, description="Tuition fees minus collected")


class StudentBalance(BaseModel):
    """What one student has been billed."""
    student_id: str
    fees: float = 0.0
    hours: float = 0.0
    collected: float = 0.0
    balance: float = 0.0
