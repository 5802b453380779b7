"""
Ledger Calculations

DESIGN DECISION: Calculations are DETERMINISTIC and read-only.
They only ever see the canonical state; nothing here mutates or stores.

Rows whose student no longer exists are skipped. The normalizer already
prevents that, but totals must not depend on it.
"""

from datetime import date
from typing import Optional

from src.models.state import CanonicalState, Session
from src.models.totals import LedgerTotals, SessionTotals, StudentBalance


def _in_range(day: date, start: Optional[date], end: Optional[date]) -> bool:
    """Inclusive range check; a missing bound is open."""
    return (start is None or day >= start) and (end is None or day <= end)


def _month_bounds(month: str) -> tuple[date, date]:
    """First and last day of a 'YYYY-MM' month."""
    try:
        year, mon = (int(part) for part in month.split("-"))
        first = date(year, mon, 1)
    except ValueError:
        raise ValueError(f"Month must look like YYYY-MM, got {month!r}")
    if mon == 12:
        following = date(year + 1, 1, 1)
    else:
        following = date(year, mon + 1, 1)
    return first, date.fromordinal(following.toordinal() - 1)


def session_totals(state: CanonicalState, session: Session) -> SessionTotals:
    student_ids = {st.id for st in state.students}
    fee = 0.0
    hours = 0.0
    for row in session.rows:
        if row.student_id not in student_ids:
            continue
        fee += row.duration * row.rate
        hours += row.duration
    return SessionTotals(fee=fee, hours=hours, total=fee + session.bike_fare)


def totals_in_range(
    state: CanonicalState,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> LedgerTotals:
    """
    Hours, fees, bike fare and collections for sessions and payments dated
    within [start, end]. Either bound may be omitted.
    """
    totals = LedgerTotals()
    for sess in state.sessions:
        if not _in_range(sess.date, start, end):
            continue
        st = session_totals(state, sess)
        totals.total_hours += st.hours
        totals.tuition_fees += st.fee
        totals.bike_fare += sess.bike_fare

    for payment in state.payments:
        if _in_range(payment.date, start, end):
            totals.collected += payment.amount

    totals.balance = totals.tuition_fees - totals.collected
    return totals


def totals_for_month(state: CanonicalState, month: str) -> LedgerTotals:
    """Totals for one calendar month given as 'YYYY-MM'."""
    first, last = _month_bounds(month)
    return totals_in_range(state, first, last)


def student_balance(state: CanonicalState, student_id: str) -> StudentBalance:
    """
    Fees and hours billed to one student across all sessions.

    Payments are not linked to students, so the balance is the fees.
    """
    fees = 0.0
    hours = 0.0
    for sess in state.sessions:
        for row in sess.rows:
            if row.student_id == student_id:
                fees += row.duration * row.rate
                hours += row.duration
    return StudentBalance(
        student_id=student_id,
        fees=fees,
        hours=hours,
        collected=0.0,
        balance=fees,
    )
