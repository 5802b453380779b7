"""Normalization of raw ledger data into the canonical state."""

from src.validation.normalizer import (
    new_id,
    normalize,
    to_date,
    to_number,
    to_timestamp,
)

__all__ = [
    "new_id",
    "normalize",
    "to_date",
    "to_number",
    "to_timestamp",
]
