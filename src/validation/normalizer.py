"""
State Normalizer

Converts raw, partial or legacy-shaped data into a valid CanonicalState.

Raw data reaches us from three places:
1. The device's own storage (possibly written by an older version)
2. Backup documents picked by the user
3. The remote record, written by any other device

DESIGN DECISION: Malformed ledger data is never reported back to the user.
Each field is coerced to its declared type or defaulted; entries missing a
required field are dropped. The result always satisfies the CanonicalState
invariants.

Normalization is idempotent. Ids are only generated for entries that lack
one, so normalizing an already-normalized state changes nothing.
"""

import math
import uuid
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, Optional

import structlog

from src.models.state import (
    DEFAULT_STUDENT_COLOR,
    CLOCK_LIMIT,
    EPOCH,
    CanonicalState,
    Gender,
    Payment,
    Session,
    SessionRow,
    StateMeta,
    Student,
)


logger = structlog.get_logger(__name__)


def new_id() -> str:
    """Short random id for entries created without one."""
    return uuid.uuid4().hex[:10]


# =============================================================================
# FIELD COERCION
# =============================================================================

def to_number(value: Any) -> float:
    """
    Coerce to a non-negative finite float.

    Missing, non-numeric, NaN, infinite, too large and negative values all
    become 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def _optional_number(value: Any) -> Optional[float]:
    """Like to_number, but None when there is no usable value at all."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return max(number, 0.0)


def to_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def to_date(value: Any) -> Optional[date]:
    """Parse a calendar date; None when the value is not one."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if len(text) < 10:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def to_timestamp(value: Any) -> datetime:
    """
    Parse the logical clock.

    Accepts datetimes, ISO-8601 strings and epoch milliseconds.
    Anything else, or anything at or past CLOCK_LIMIT, is the epoch.
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            if not math.isfinite(value) or value < 0:
                return EPOCH
            moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return EPOCH
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return EPOCH
    else:
        return EPOCH

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    try:
        moment = moment.astimezone(timezone.utc)
    except OverflowError:
        return EPOCH
    if moment >= CLOCK_LIMIT:
        return EPOCH
    return moment


def _to_id(value: Any) -> str:
    text = to_text(value).strip()
    return text or new_id()


def _pick(raw: Mapping, camel: str, snake: str, default: Any = None) -> Any:
    """Read a field under either its serialized or its Python name."""
    if camel in raw:
        return raw[camel]
    return raw.get(snake, default)


def _entries(value: Any) -> list[Mapping]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, Mapping)]


# =============================================================================
# COLLECTIONS
# =============================================================================

def _normalize_students(raw_students: list[Mapping]) -> tuple[list[Student], dict[str, float]]:
    """
    Returns the valid students and, per student id, the legacy per-student
    hourly rate (0 when absent). The legacy rate is not kept on the
    student; it only prices session rows that carry no rate of their own.
    """
    students: list[Student] = []
    legacy_rates: dict[str, float] = {}

    for raw in raw_students:
        name = to_text(raw.get("name")).strip()
        if not name:
            continue
        student_id = _to_id(raw.get("id"))
        if student_id in legacy_rates:
            continue

        gender = to_text(raw.get("gender")).strip().lower()
        students.append(Student(
            id=student_id,
            name=name,
            gender=gender if gender in {g.value for g in Gender} else Gender.MALE,
            color=to_text(raw.get("color")) or DEFAULT_STUDENT_COLOR,
            notes=to_text(raw.get("notes")),
        ))
        legacy_rates[student_id] = to_number(
            _pick(raw, "hourlyRate", "hourly_rate")
        )

    return students, legacy_rates


def _normalize_rows(
    raw_rows: list[Mapping],
    legacy_rates: dict[str, float],
) -> list[SessionRow]:
    rows = []
    for raw in raw_rows:
        student_id = to_text(_pick(raw, "studentId", "student_id")).strip()
        if student_id not in legacy_rates:
            continue
        duration = to_number(raw.get("duration"))
        if duration <= 0:
            continue

        raw_rate = raw.get("rate")
        rate = _optional_number(raw_rate)
        if rate is None:
            # A null or blank rate reads as zero. Only a missing or unparsable
            # one falls back to the student's old hourly rate, never to the
            # global rate.
            if "rate" in raw and to_text(raw_rate).strip() == "":
                rate = 0.0
            else:
                rate = legacy_rates[student_id]

        rows.append(SessionRow(student_id=student_id, duration=duration, rate=rate))
    return rows


def _normalize_sessions(
    raw_sessions: list[Mapping],
    legacy_rates: dict[str, float],
) -> list[Session]:
    sessions: list[Session] = []
    seen: set[str] = set()

    for raw in raw_sessions:
        session_date = to_date(raw.get("date"))
        if session_date is None:
            continue
        # Rows are filtered first; a session left without rows is dropped
        rows = _normalize_rows(_entries(raw.get("rows")), legacy_rates)
        if not rows:
            continue
        session_id = _to_id(raw.get("id"))
        if session_id in seen:
            continue
        seen.add(session_id)

        sessions.append(Session(
            id=session_id,
            date=session_date,
            bike_fare=to_number(_pick(raw, "bikeFare", "bike_fare")),
            notes=to_text(raw.get("notes")),
            rows=rows,
        ))
    return sessions


def _normalize_payments(raw_payments: list[Mapping]) -> list[Payment]:
    payments: list[Payment] = []
    seen: set[str] = set()

    for raw in raw_payments:
        payment_date = to_date(raw.get("date"))
        if payment_date is None:
            continue
        payment_id = _to_id(raw.get("id"))
        if payment_id in seen:
            continue
        seen.add(payment_id)

        payments.append(Payment(
            id=payment_id,
            date=payment_date,
            amount=to_number(raw.get("amount")),
            notes=to_text(raw.get("notes")),
        ))
    return payments


# =============================================================================
# ENTRY POINT
# =============================================================================

def normalize(raw: Any) -> CanonicalState:
    """
    Convert any raw input into a valid CanonicalState.

    Args:
        raw: A mapping in the serialized (camelCase) or Python (snake_case)
             shape, an existing CanonicalState, or anything else (which
             normalizes to the empty state).

    Returns:
        A CanonicalState satisfying every invariant.
    """
    if isinstance(raw, CanonicalState):
        raw = raw.to_document()
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning("normalize_non_mapping_input", input_type=type(raw).__name__)
        return CanonicalState()

    global_rate = to_number(_pick(raw, "globalRate", "global_rate"))

    raw_students = _entries(raw.get("students"))
    raw_sessions = _entries(raw.get("sessions"))
    raw_payments = _entries(raw.get("payments"))

    students, legacy_rates = _normalize_students(raw_students)
    sessions = _normalize_sessions(raw_sessions, legacy_rates)
    payments = _normalize_payments(raw_payments)

    meta = raw.get("meta")
    updated_at = EPOCH
    if isinstance(meta, Mapping):
        updated_at = to_timestamp(_pick(meta, "updatedAt", "updated_at"))

    dropped = (
        len(raw_students) - len(students),
        len(raw_sessions) - len(sessions),
        len(raw_payments) - len(payments),
    )
    if any(dropped):
        logger.info(
            "normalize_dropped_entries",
            students=dropped[0],
            sessions=dropped[1],
            payments=dropped[2],
        )

    return CanonicalState(
        global_rate=global_rate,
        students=students,
        sessions=sessions,
        payments=payments,
        meta=StateMeta(updated_at=updated_at),
    )
