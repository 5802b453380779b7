"""
Ledger Store

The explicitly owned, single-writer holder of the in-memory canonical state.

Every mutation:
1. Builds a new CanonicalState (construction enforces the invariants)
2. Advances the logical clock
3. Persists it locally
4. Only then notifies the sync trigger (fire-and-forget)

If validation or local persistence fails, the in-memory state is unchanged
and the error reaches the caller. Sync failures never do: they happen later,
in the background, and only get logged.
"""

from datetime import date
from typing import Any, Callable, Iterable, Optional, Union

from src.audit import AuditLogger
from src.models.state import (
    DEFAULT_STUDENT_COLOR,
    CanonicalState,
    Gender,
    Payment,
    Session,
    SessionRow,
    Student,
    advance_clock,
)
from src.services.export.backup import ImportRejectedError, export_backup, parse_backup
from src.services.storage.local_store import LocalStateStore
from src.validation import new_id, normalize, to_date


DateLike = Union[date, str]


class LedgerStore:
    """
    Owner of the canonical state on this device.

    Usage:
        ledger = LedgerStore(LocalStateStore.from_settings(settings.local_store))
        ledger.attach_sync(orchestrator.trigger)
        student = ledger.upsert_student("Amit")
    """

    def __init__(
        self,
        local_store: LocalStateStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._local = local_store
        self._audit = audit_logger or AuditLogger()
        self._state = local_store.load_local()
        self._sync_trigger: Optional[Callable[[], Any]] = None

    @property
    def state(self) -> CanonicalState:
        return self._state

    def attach_sync(self, trigger: Optional[Callable[[], Any]]) -> None:
        """Register the callable invoked after every accepted mutation."""
        self._sync_trigger = trigger

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _rebuild(self, **changes: Any) -> CanonicalState:
        """Validated copy of the current state with some collections replaced."""
        data = {
            "global_rate": self._state.global_rate,
            "students": self._state.students,
            "sessions": self._state.sessions,
            "payments": self._state.payments,
            "meta": self._state.meta,
        }
        data.update(changes)
        return CanonicalState(**data)

    def _commit(
        self,
        state: CanonicalState,
        operation: str,
        entity_type: str,
        entity_id: Optional[str] = None,
    ) -> CanonicalState:
        state = state.with_clock(advance_clock(self._state.updated_at))
        self._local.save_local(state)
        self._state = state
        self._audit.log_state_mutated(
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        if self._sync_trigger is not None:
            self._sync_trigger()
        return state

    @staticmethod
    def _upsert(items: list, item: Any) -> list:
        """Replace the entry with the same id in place, or append."""
        result = list(items)
        for idx, existing in enumerate(result):
            if existing.id == item.id:
                result[idx] = item
                return result
        result.append(item)
        return result

    @staticmethod
    def _require_date(value: DateLike) -> date:
        parsed = to_date(value)
        if parsed is None:
            raise ValueError(f"Invalid date: {value!r}")
        return parsed

    # =========================================================================
    # GLOBAL RATE
    # =========================================================================

    def set_global_rate(self, rate: float) -> CanonicalState:
        """Set the default hourly rate applied to newly recorded session rows."""
        return self._commit(
            self._rebuild(global_rate=rate),
            operation="update",
            entity_type="global_rate",
        )

    # =========================================================================
    # STUDENTS
    # =========================================================================

    def upsert_student(
        self,
        name: str,
        gender: Union[Gender, str] = Gender.MALE,
        color: str = DEFAULT_STUDENT_COLOR,
        notes: str = "",
        student_id: Optional[str] = None,
    ) -> Student:
        """Add a student, or replace the one with the same id."""
        student = Student(
            id=student_id or new_id(),
            name=name,
            gender=gender,
            color=color,
            notes=notes,
        )
        exists = self._state.get_student(student.id) is not None
        self._commit(
            self._rebuild(students=self._upsert(self._state.students, student)),
            operation="update" if exists else "add",
            entity_type="student",
            entity_id=student.id,
        )
        return student

    def delete_student(self, student_id: str) -> bool:
        """
        Delete a student.

        Cascades: the student's session rows are removed, then every session
        left without rows. Returns False if no such student exists.
        """
        if self._state.get_student(student_id) is None:
            return False

        sessions = []
        for sess in self._state.sessions:
            rows = [row for row in sess.rows if row.student_id != student_id]
            if not rows:
                continue
            if len(rows) != len(sess.rows):
                sess = sess.model_copy(update={"rows": rows})
            sessions.append(sess)

        self._commit(
            self._rebuild(
                students=[st for st in self._state.students if st.id != student_id],
                sessions=sessions,
            ),
            operation="delete",
            entity_type="student",
            entity_id=student_id,
        )
        return True

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def upsert_session(
        self,
        session_date: DateLike,
        rows: Iterable[tuple[str, float]],
        bike_fare: float = 0.0,
        notes: str = "",
        session_id: Optional[str] = None,
    ) -> Session:
        """
        Record a session, or replace the one with the same id.

        Args:
            session_date: Calendar date of the session
            rows: (student_id, duration in hours) pairs. Pairs without a
                  student or with a non-positive duration are ignored.
                  Every row is priced at the current global rate.

        Raises:
            ValueError: If no row remains, a row names an unknown student,
                        or the date is invalid
        """
        rate = self._state.global_rate
        session_rows = [
            SessionRow(student_id=student_id, duration=duration, rate=rate)
            for student_id, duration in rows
            if student_id and duration and duration > 0
        ]
        if not session_rows:
            raise ValueError("Add at least one student with duration")

        session = Session(
            id=session_id or new_id(),
            date=self._require_date(session_date),
            bike_fare=bike_fare,
            notes=notes,
            rows=session_rows,
        )
        exists = any(sess.id == session.id for sess in self._state.sessions)
        self._commit(
            self._rebuild(sessions=self._upsert(self._state.sessions, session)),
            operation="update" if exists else "add",
            entity_type="session",
            entity_id=session.id,
        )
        return session

    def delete_session(self, session_id: str) -> bool:
        if not any(sess.id == session_id for sess in self._state.sessions):
            return False
        self._commit(
            self._rebuild(
                sessions=[s for s in self._state.sessions if s.id != session_id]
            ),
            operation="delete",
            entity_type="session",
            entity_id=session_id,
        )
        return True

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def upsert_payment(
        self,
        payment_date: DateLike,
        amount: float,
        notes: str = "",
        payment_id: Optional[str] = None,
    ) -> Payment:
        """Record a payment, or replace the one with the same id."""
        payment = Payment(
            id=payment_id or new_id(),
            date=self._require_date(payment_date),
            amount=amount,
            notes=notes,
        )
        exists = any(p.id == payment.id for p in self._state.payments)
        self._commit(
            self._rebuild(payments=self._upsert(self._state.payments, payment)),
            operation="update" if exists else "add",
            entity_type="payment",
            entity_id=payment.id,
        )
        return payment

    def delete_payment(self, payment_id: str) -> bool:
        if not any(p.id == payment_id for p in self._state.payments):
            return False
        self._commit(
            self._rebuild(
                payments=[p for p in self._state.payments if p.id != payment_id]
            ),
            operation="delete",
            entity_type="payment",
            entity_id=payment_id,
        )
        return True

    # =========================================================================
    # WHOLESALE REPLACEMENT
    # =========================================================================

    def adopt(self, incoming: Union[CanonicalState, dict[str, Any]]) -> CanonicalState:
        """
        Replace the whole state with a remote or merged one.

        The incoming state is normalized first. Its clock is kept unless that
        would move the local clock backwards. Does not trigger a sync: the
        caller is the sync itself.
        """
        state = normalize(incoming)
        if state.updated_at <= self._state.updated_at:
            state = state.with_clock(advance_clock(self._state.updated_at))
        self._local.save_local(state)
        self._state = state
        return state

    def import_backup(self, document: Union[str, bytes, dict[str, Any]]) -> CanonicalState:
        """
        Replace the whole state with a backup document.

        Raises:
            ImportRejectedError: If the document lacks any collection.
                                 The current state is left untouched.
        """
        try:
            raw = parse_backup(document)
        except ImportRejectedError as e:
            self._audit.log_backup_rejected(error_message=str(e))
            raise

        # The document's own clock is ignored; an import is a fresh local mutation
        state = self._commit(normalize(raw), operation="import", entity_type="backup")
        self._audit.log_backup_imported(counts=state.counts())
        return state

    def export_backup(self) -> str:
        return export_backup(self._state)
