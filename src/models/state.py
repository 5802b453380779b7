"""
Canonical State Models for Tuition Ledger

These models define the one aggregate the whole application revolves around:
the tutor's students, the billable sessions taught to them, the payments
received, and the default hourly rate.

The same shape is used for:
1. The blob persisted on the device
2. The opaque payload of the remote record
3. Backup documents

DESIGN DECISION: Python attributes are snake_case, but the serialized form
keeps the camelCase keys older devices and backups already use
(globalRate, bikeFare, studentId, meta.updatedAt). Both spellings are
accepted on input.
"""

from datetime import date as CalendarDate
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# Lowest possible logical clock value. Any real remote timestamp wins against it.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Smallest step the logical clock moves when the wall clock lags behind it
CLOCK_TICK = timedelta(microseconds=1)

# Clock values at or past this are treated as unreadable, leaving room for
# advance_clock to step past any accepted value
CLOCK_LIMIT = datetime(9999, 1, 1, tzinfo=timezone.utc)

DEFAULT_STUDENT_COLOR = "#5b8def"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def advance_clock(*previous: datetime, now: Optional[datetime] = None) -> datetime:
    """
    Return a clock value strictly after every value in `previous`.

    Uses the wall clock when it is already ahead; otherwise steps one tick past
    the latest previous value, so the logical clock never regresses even if the
    device clock does.
    """
    moment = now or utc_now()
    if previous:
        latest = max(previous)
        if latest >= moment:
            moment = latest + CLOCK_TICK
    return moment


# =============================================================================
# ENUMS
# =============================================================================

class Gender(str, Enum):
    """Student gender, used only as a display hint."""
    MALE = "male"
    FEMALE = "female"


# =============================================================================
# ENTITIES
# =============================================================================

class LedgerModel(BaseModel):
    """Base for every model that is serialized into the canonical blob."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Student(LedgerModel):
    """A person the tutor teaches."""

    id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        description="Display name, never blank"
    )
    gender: Gender = Gender.MALE
    color: str = Field(
        default=DEFAULT_STUDENT_COLOR,
        description="Display tag colour"
    )
    notes: str = ""

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        """Names are stored trimmed; a blank name is rejected."""
        v = v.strip()
        if not v:
            raise ValueError("Student name cannot be blank")
        return v


class SessionRow(LedgerModel):
    """
    One student's share of a session.

    The rate is copied onto the row when the session is recorded, so later
    changes to the global rate do not re-price old sessions.
    """

    student_id: str = Field(..., min_length=1)
    duration: float = Field(
        ...,
        gt=0,
        allow_inf_nan=False,
        description="Hours taught"
    )
    rate: float = Field(
        default=0.0,
        ge=0,
        allow_inf_nan=False,
        description="Hourly rate applied to this row"
    )


class Session(LedgerModel):
    """A billable teaching session, possibly shared by several students."""

    id: str = Field(..., min_length=1)
    date: CalendarDate
    bike_fare: float = Field(
        default=0.0,
        ge=0,
        allow_inf_nan=False,
        description="Travel cost charged on top of the fee"
    )
    notes: str = ""
    rows: list[SessionRow] = Field(..., min_length=1)


class Payment(LedgerModel):
    """Money received from a student or family."""

    id: str = Field(..., min_length=1)
    date: CalendarDate
    amount: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    notes: str = ""


class StateMeta(LedgerModel):
    """Revision metadata. `updated_at` is the replica's logical clock."""

    updated_at: datetime = EPOCH

    @field_validator('updated_at')
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC so clocks always compare."""
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        v = v.astimezone(timezone.utc)
        if v >= CLOCK_LIMIT:
            raise ValueError(f"Clock value out of range: {v.isoformat()}")
        return v


# =============================================================================
# AGGREGATE ROOT
# =============================================================================

class CanonicalState(LedgerModel):
    """
    The validated dataset of one user on one replica.

    CRITICAL: Construction enforces the referential invariants. A session row
    may only point at an existing student, and ids are unique per collection.
    Raw data from storage, imports or the network must go through the
    normalizer first; it repairs what this model would reject.
    """

    global_rate: float = Field(
        default=0.0,
        ge=0,
        allow_inf_nan=False,
        description="Default hourly rate for new session rows"
    )
    students: list[Student] = Field(default_factory=list)
    sessions: list[Session] = Field(default_factory=list)
    payments: list[Payment] = Field(default_factory=list)
    meta: StateMeta = Field(default_factory=StateMeta)

    @model_validator(mode='after')
    def check_invariants(self) -> 'CanonicalState':
        for name in ("students", "sessions", "payments"):
            ids = [item.id for item in getattr(self, name)]
            if len(ids) != len(set(ids)):
                raise ValueError(f"Duplicate id in {name}")

        student_ids = {st.id for st in self.students}
        for sess in self.sessions:
            for row in sess.rows:
                if row.student_id not in student_ids:
                    raise ValueError(
                        f"Session {sess.id} references unknown student {row.student_id}"
                    )
        return self

    @property
    def updated_at(self) -> datetime:
        return self.meta.updated_at

    def has_data(self) -> bool:
        """True when any collection holds at least one entry."""
        return bool(self.students or self.sessions or self.payments)

    def counts(self) -> dict[str, int]:
        return {
            "students": len(self.students),
            "sessions": len(self.sessions),
            "payments": len(self.payments),
        }

    def content(self) -> dict[str, Any]:
        """Serialized dataset without revision metadata."""
        return self.model_dump(mode="json", by_alias=True, exclude={"meta"})

    def to_document(self) -> dict[str, Any]:
        """Serialized form used for local storage, remote payloads and backups."""
        return self.model_dump(mode="json", by_alias=True)

    def with_clock(self, updated_at: datetime) -> 'CanonicalState':
        """Copy of this state stamped with a new logical clock."""
        return self.model_copy(update={"meta": StateMeta(updated_at=updated_at)})

    def get_student(self, student_id: str) -> Optional[Student]:
        return next((st for st in self.students if st.id == student_id), None)


class RemoteRecord(LedgerModel):
    """
    The single remote record of one user.

    The payload is opaque to the remote store: it is kept exactly as stored
    and only interpreted (normalized) by the sync orchestrator.
    """

    owner: str = Field(..., min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime = EPOCH

    @field_validator('updated_at')
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)
