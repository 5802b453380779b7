"""
Merge Engine

Combines two divergent replicas into one. Used only when both the local and
the cloud replica hold data.

POLICY (deliberate, do not "improve"):
- Union by id per collection: no record present on either side is lost.
- Local wins on id collision, taking the whole record. There is no
  field-level reconciliation, so a concurrent edit made on the other device
  to the same record is overwritten.
- globalRate comes from local unless it is zero, then from cloud.
- The result gets a fresh logical clock, later than both inputs.
"""

from datetime import datetime
from typing import Optional, TypeVar

from src.models.state import CanonicalState, StateMeta, advance_clock


T = TypeVar("T")


def _union_by_id(cloud_items: list[T], local_items: list[T]) -> list[T]:
    merged: dict[str, T] = {}
    for item in cloud_items:
        merged[item.id] = item
    for item in local_items:
        merged[item.id] = item
    return list(merged.values())


def merge(
    local: CanonicalState,
    cloud: CanonicalState,
    now: Optional[datetime] = None,
) -> CanonicalState:
    """
    Merge two canonical states with local precedence.

    Pure and total: for valid inputs the result is always a valid state.
    A student kept from either side keeps every session that references it,
    so referential integrity carries over from the inputs.

    Args:
        local: This device's replica (wins on id collision)
        cloud: The remote replica
        now: Wall-clock moment of the merge (defaults to the current time)
    """
    return CanonicalState(
        global_rate=local.global_rate or cloud.global_rate,
        students=_union_by_id(cloud.students, local.students),
        sessions=_union_by_id(cloud.sessions, local.sessions),
        payments=_union_by_id(cloud.payments, local.payments),
        meta=StateMeta(
            updated_at=advance_clock(local.updated_at, cloud.updated_at, now=now)
        ),
    )
