"""
Tuition Ledger - Source Package

Record keeping for a private tutor: students, billable sessions and
payments, kept on the device and mirrored to one remote record per user.

DESIGN PRINCIPLES:
1. The local copy is always usable, with or without a network
2. No record is ever silently lost when replicas diverge
3. Malformed data is repaired or dropped, never fatal
4. Every sync decision is logged
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Tuition Ledger Team"
