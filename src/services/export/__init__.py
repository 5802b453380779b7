"""Backup and CSV export collaborators."""

from src.services.export.backup import (
    ImportRejectedError,
    export_backup,
    parse_backup,
)
from src.services.export.tabular import (
    PAYMENT_COLUMNS,
    SESSION_COLUMNS,
    STUDENT_COLUMNS,
    payments_csv,
    sessions_csv,
    students_csv,
)

__all__ = [
    "ImportRejectedError",
    "export_backup",
    "parse_backup",
    "PAYMENT_COLUMNS",
    "SESSION_COLUMNS",
    "STUDENT_COLUMNS",
    "payments_csv",
    "sessions_csv",
    "students_csv",
]
