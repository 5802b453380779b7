"""
Tabular (CSV) Export

One line per student, per payment, and per session row. Columns come in a
fixed order. A value is quoted only when it contains a comma, a quote or a
newline; embedded quotes are doubled.
"""

import csv
import io
from typing import Any, Iterable

from src.models.state import CanonicalState


STUDENT_COLUMNS = ["id", "name", "gender", "color", "notes"]
SESSION_COLUMNS = ["id", "date", "bikeFare", "notes", "studentId", "duration", "rate"]
PAYMENT_COLUMNS = ["id", "date", "amount", "notes"]


def _format(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_csv(columns: list[str], rows: Iterable[list[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_format(value) for value in row])
    return buffer.getvalue()


def students_csv(state: CanonicalState) -> str:
    return _to_csv(STUDENT_COLUMNS, (
        [st.id, st.name, st.gender.value, st.color, st.notes]
        for st in state.students
    ))


def sessions_csv(state: CanonicalState) -> str:
    """One line per session row; session fields repeat on each line."""
    return _to_csv(SESSION_COLUMNS, (
        [
            sess.id,
            sess.date.isoformat(),
            sess.bike_fare,
            sess.notes,
            row.student_id,
            row.duration,
            row.rate,
        ]
        for sess in state.sessions
        for row in sess.rows
    ))


def payments_csv(state: CanonicalState) -> str:
    return _to_csv(PAYMENT_COLUMNS, (
        [p.id, p.date.isoformat(), p.amount, p.notes]
        for p in state.payments
    ))
