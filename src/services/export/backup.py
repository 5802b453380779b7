"""
Backup Documents

A backup is the canonical state serialized as pretty-printed JSON. Importing
one goes through the same normalizer as a remote payload, but the document
must at least look like a ledger: all three collections present as lists.
Anything else is rejected before any state is touched.
"""

import json
from typing import Any, Union

from src.models.state import CanonicalState


REQUIRED_COLLECTIONS = ("students", "sessions", "payments")


class ImportRejectedError(Exception):
    """The backup document is not a usable ledger."""
    pass


def export_backup(state: CanonicalState) -> str:
    """Serialize the state as a backup document."""
    return json.dumps(state.to_document(), indent=2, ensure_ascii=False)


def parse_backup(document: Union[str, bytes, dict[str, Any]]) -> dict[str, Any]:
    """
    Parse and shape-check a backup document.

    Args:
        document: JSON text (or bytes), or an already-parsed mapping

    Returns:
        The raw mapping, ready for normalization

    Raises:
        ImportRejectedError: If the document is not JSON, not an object,
                             or lacks any of the three collections as lists
    """
    if isinstance(document, (str, bytes)):
        try:
            data = json.loads(document)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ImportRejectedError(f"Backup is not valid JSON: {e}")
    else:
        data = document

    if not isinstance(data, dict):
        raise ImportRejectedError("Backup must be a JSON object")

    missing = [
        name for name in REQUIRED_COLLECTIONS
        if not isinstance(data.get(name), list)
    ]
    if missing:
        raise ImportRejectedError(
            f"Backup is missing collections: {', '.join(missing)}"
        )

    return data
