"""Canonical hashing helpers for the claim audit ledger.

The canonical form is the one the hash chain depends on: any change to it
invalidates every stored ledger, so it is pinned here and nowhere else.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_event_hash(event: dict[str, Any]) -> str:
    """SHA-256 over the sealed fields of a claim event.

    Only ``claim_id, event_key, created_at, stage, type, data, prev_hash``
    are covered; any other key in *event* (``hash``, ``actor_id``, ...) is
    ignored.  A missing or ``None`` ``prev_hash`` hashes as ``""``.
    """
    payload = {
        "claim_id": event.get("claim_id"),
        "event_key": event.get("event_key"),
        "created_at": event.get("created_at"),
        "stage": event.get("stage"),
        "type": event.get("type"),
        "data": event.get("data"),
        "prev_hash": event.get("prev_hash") or "",
    }
    return sha256_hex(canonical_json_bytes(payload))
