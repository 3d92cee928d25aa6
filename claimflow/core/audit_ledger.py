"""Append-only, hash-chained claim audit ledger.

Every claim owns one chain.  Each event stores the hash of its predecessor
(the event with the greatest ``event_key``) and seals itself with a SHA-256
over its canonical payload, so any retroactive edit breaks ``verify_chain``.

Design:
- Append-only: ``append()`` is the only write; there is no update or delete.
- Event keys are ``<ISO-8601 UTC µs>#<stage>#<8 hex>`` and sort
  chronologically.  When the clock has not moved past the tail's timestamp
  the new key is bumped 1 µs beyond it, so keys stay strictly increasing.
- ``actor_id`` and ``run_id`` ride beside the sealed payload, unhashed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from claimflow.core.hasher import compute_event_hash
from claimflow.models.ledger import AuditContext, ClaimEvent, EventType
from claimflow.models.stages import ClaimStage
from claimflow.storage.base import DocumentStore

logger = logging.getLogger(__name__)

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class LedgerIntegrityError(RuntimeError):
    """Raised when a claim's hash chain is broken."""


def format_timestamp(ts: datetime) -> str:
    """UTC timestamp with microseconds and a ``Z`` suffix."""
    return ts.astimezone(timezone.utc).strftime(_TS_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


def create_event_key(
    stage: str, now: datetime, after: ClaimEvent | None = None
) -> tuple[str, str]:
    """Return ``(event_key, created_at)`` for an event appended at *now*.

    *after* is the current chain tail; the timestamp is pushed past it when
    the clock has not advanced.
    """
    if after is not None:
        tail_ts = parse_timestamp(after.created_at)
        if now <= tail_ts:
            now = tail_ts + timedelta(microseconds=1)
    created_at = format_timestamp(now)
    return f"{created_at}#{stage}#{uuid.uuid4().hex[:8]}", created_at


class AuditLedger:
    """Per-claim hash chain over a DocumentStore.

    Parameters
    ----------
    store:
        Persistence for claim events.
    clock:
        Source of "now"; defaults to UTC wall time.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Core: append-only write
    # ------------------------------------------------------------------

    async def append(
        self,
        claim_id: str,
        stage: ClaimStage | str,
        type: EventType | str,
        data: dict[str, Any] | None = None,
        ctx: AuditContext | None = None,
    ) -> ClaimEvent:
        """Seal and store one event at the tail of the claim's chain.

        Returns the stored event with ``prev_hash`` and ``hash`` set.
        """
        stage_value = stage.value if isinstance(stage, ClaimStage) else stage
        type_value = type.value if isinstance(type, EventType) else type
        ctx = ctx or AuditContext()

        tail = await self._store.get_last_event(claim_id)
        event_key, created_at = create_event_key(stage_value, self._clock(), tail)

        unsealed = ClaimEvent(
            claim_id=claim_id,
            event_key=event_key,
            created_at=created_at,
            stage=stage_value,
            type=type_value,
            data=data or {},
            prev_hash=tail.hash if tail else None,
            actor_id=ctx.actor_id,
            run_id=ctx.run_id,
        )
        sealed = unsealed.model_copy(
            update={"hash": compute_event_hash(unsealed.hashed_fields())}
        )

        await self._store.put_event(sealed)
        logger.debug("Ledger %s <- %s (%s)", claim_id, type_value, event_key)
        return sealed

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    async def get_events(self, claim_id: str) -> list[ClaimEvent]:
        """Return the claim's events in chain order."""
        return await self._store.get_events(claim_id)

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    async def verify_chain(self, claim_id: str) -> bool:
        """Verify the hash chain integrity for a claim.

        Walks all events in key order, recomputes each hash, and checks
        that every ``prev_hash`` names its predecessor.

        Returns True if the chain is valid, raises LedgerIntegrityError otherwise.
        """
        events = await self._store.get_events(claim_id)

        prev_hash = ""
        for event in events:
            if event.claim_id != claim_id:
                raise LedgerIntegrityError(
                    f"Foreign event {event.event_key} in chain of {claim_id}: "
                    f"belongs to {event.claim_id!r}"
                )

            if (event.prev_hash or "") != prev_hash:
                raise LedgerIntegrityError(
                    f"Chain broken at event {event.event_key}: "
                    f"expected prev_hash={prev_hash!r}, "
                    f"got {event.prev_hash!r}"
                )

            expected_hash = compute_event_hash(event.hashed_fields())
            if event.hash != expected_hash:
                raise LedgerIntegrityError(
                    f"Tampered event {event.event_key}: "
                    f"expected hash={expected_hash!r}, "
                    f"got {event.hash!r}"
                )

            prev_hash = event.hash

        return True
