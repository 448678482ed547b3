"""
Canonical JSON and SHA-256 helpers.

The audit trail folds the hash of each event into the next. The policy
loader fingerprints the YAML source so every workflow can record which
policy built its chain. Workflow metadata goes through the same encoder
before it reaches a JSON column.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS_MARKER = "GENESIS"


def _canonical_default(value: Any) -> Any:
    # 2250 and 2250.00 must hash identically.
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    raise TypeError(f"Cannot canonicalize {type(value).__name__}")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, one textual form per value."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_canonical_default,
    )


def to_json_compatible(data: Any) -> Any:
    """``data`` with every value reduced to what a JSON column stores as-is."""
    return json.loads(canonicalize_json(data))


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: Any) -> str:
    return sha256_hex(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Link hash of one audit event.

    Changing any field of an event, or of any event before it, changes
    this value.  The first event in the chain hashes against
    ``GENESIS_MARKER``.
    """
    return sha256_hex(
        "|".join(
            (entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS_MARKER)
        )
    )
