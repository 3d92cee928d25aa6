"""Claim audit ledger entry model (append-only, hash-chained per claim).

Each event is sealed by ``hash`` over the canonical serialisation of
``claim_id, event_key, created_at, stage, type, data, prev_hash``.
``actor_id`` and ``run_id`` are recorded beside the sealed payload and are
not covered by the hash.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class EventType(str, Enum):
    CLAIM_CREATED = "CLAIM_CREATED"
    STAGE_STARTED = "STAGE_STARTED"
    STAGE_COMPLETED = "STAGE_COMPLETED"
    STAGE_ERROR = "STAGE_ERROR"
    SCHEMA_VALIDATION_FAILED = "SCHEMA_VALIDATION_FAILED"
    JUDGE_COMPLETED = "JUDGE_COMPLETED"
    JUDGE_FAILED = "JUDGE_FAILED"
    REVIEWER_DECISION = "REVIEWER_DECISION"


class AuditContext(BaseModel):
    """Who and what caused an append; stored unhashed on the event."""

    model_config = ConfigDict(frozen=True)

    actor_id: str | None = None
    run_id: str | None = None


class ClaimEvent(BaseModel):
    """A single immutable entry in a claim's audit ledger."""

    model_config = ConfigDict(frozen=True)

    claim_id: str
    event_key: str  # "<iso-ts>#<stage>#<suffix>", sorts chronologically
    created_at: str  # ISO-8601 UTC, kept as the exact hashed string
    stage: str
    type: str
    data: dict[str, Any] = {}
    prev_hash: str | None = None
    hash: str = ""
    actor_id: str | None = None
    run_id: str | None = None

    def hashed_fields(self) -> dict[str, Any]:
        """The exact mapping the event hash is computed over."""
        return {
            "claim_id": self.claim_id,
            "event_key": self.event_key,
            "created_at": self.created_at,
            "stage": self.stage,
            "type": self.type,
            "data": self.data,
            "prev_hash": self.prev_hash or "",
        }
