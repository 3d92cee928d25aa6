"""In-process DocumentStore for tests, demos and ephemeral runs."""

from __future__ import annotations

import bisect
import logging
from datetime import datetime, timezone
from typing import Any

from claimflow.models.claim import Claim, ComplianceDeadlines
from claimflow.models.judge import JudgeReport
from claimflow.models.ledger import ClaimEvent
from claimflow.models.runs import Run, RunEvent, RunStatus
from claimflow.models.stages import ClaimStage
from claimflow.storage.base import (
    ClaimNotFoundError,
    RunNotFoundError,
    StoreConflictError,
    check_run_fields,
)

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Dict-backed store.  Nothing survives the process."""

    def __init__(self) -> None:
        self._claims: dict[str, Claim] = {}
        # claim_id -> events sorted by event_key
        self._events: dict[str, list[ClaimEvent]] = {}
        self._runs: dict[str, Run] = {}
        # run_id -> run events sorted by seq
        self._run_events: dict[str, list[RunEvent]] = {}

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    async def put_claim(self, claim: Claim) -> None:
        self._claims[claim.claim_id] = claim

    async def get_claim(self, claim_id: str) -> Claim | None:
        return self._claims.get(claim_id)

    def _require_claim(self, claim_id: str) -> Claim:
        claim = self._claims.get(claim_id)
        if claim is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found.")
        return claim

    async def update_claim_stage(self, claim_id: str, stage: ClaimStage) -> Claim:
        claim = self._require_claim(claim_id)
        updated = claim.model_copy(
            update={"stage": stage, "updated_at": datetime.now(timezone.utc)}
        )
        self._claims[claim_id] = updated
        return updated

    async def update_claim_compliance(
        self, claim_id: str, compliance: ComplianceDeadlines
    ) -> Claim:
        claim = self._require_claim(claim_id)
        updated = claim.model_copy(
            update={"compliance": compliance, "updated_at": datetime.now(timezone.utc)}
        )
        self._claims[claim_id] = updated
        return updated

    async def list_claims(self, stage: ClaimStage | None = None) -> list[Claim]:
        claims = sorted(self._claims.values(), key=lambda c: c.created_at, reverse=True)
        if stage is not None:
            claims = [c for c in claims if c.stage == stage]
        return claims

    # ------------------------------------------------------------------
    # Claim events
    # ------------------------------------------------------------------

    async def put_event(self, event: ClaimEvent) -> None:
        chain = self._events.setdefault(event.claim_id, [])
        keys = [e.event_key for e in chain]
        idx = bisect.bisect_left(keys, event.event_key)
        if idx < len(keys) and keys[idx] == event.event_key:
            raise StoreConflictError(
                f"Event {event.event_key} already exists for claim {event.claim_id}."
            )
        chain.insert(idx, event)

    async def get_last_event(self, claim_id: str) -> ClaimEvent | None:
        chain = self._events.get(claim_id)
        return chain[-1] if chain else None

    async def get_events(self, claim_id: str) -> list[ClaimEvent]:
        return list(self._events.get(claim_id, []))

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def put_run(self, run: Run) -> None:
        self._runs[run.run_id] = run

    async def get_run(self, run_id: str) -> Run | None:
        return self._runs.get(run_id)

    def _require_run(self, run_id: str) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(f"Run {run_id} not found.")
        return run

    async def update_run_status(
        self, run_id: str, status: RunStatus, **fields: Any
    ) -> Run:
        check_run_fields(fields)
        run = self._require_run(run_id)
        updated = run.model_copy(update={"status": status, **fields})
        self._runs[run_id] = updated
        return updated

    async def attach_judge_report(self, run_id: str, report: JudgeReport) -> Run:
        run = self._require_run(run_id)
        updated = run.model_copy(update={"judge_report": report})
        self._runs[run_id] = updated
        return updated

    async def get_runs_for_claim(self, claim_id: str) -> list[Run]:
        runs = [r for r in self._runs.values() if r.claim_id == claim_id]
        return sorted(runs, key=lambda r: r.started_at)

    # ------------------------------------------------------------------
    # Run events
    # ------------------------------------------------------------------

    async def put_run_event(self, event: RunEvent) -> None:
        events = self._run_events.setdefault(event.run_id, [])
        seqs = [e.seq for e in events]
        idx = bisect.bisect_left(seqs, event.seq)
        if idx < len(seqs) and seqs[idx] == event.seq:
            raise StoreConflictError(
                f"Run event seq {event.seq} already exists for run {event.run_id}."
            )
        events.insert(idx, event)

    async def get_run_events(self, run_id: str, from_seq: int = 0) -> list[RunEvent]:
        return [e for e in self._run_events.get(run_id, []) if e.seq > from_seq]

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def purge_claim(self, claim_id: str) -> dict[str, int]:
        self._require_claim(claim_id)
        run_ids = [r.run_id for r in self._runs.values() if r.claim_id == claim_id]
        counts = {
            "claims": 1,
            "events": len(self._events.pop(claim_id, [])),
            "runs": len(run_ids),
            "run_events": sum(len(self._run_events.pop(rid, [])) for rid in run_ids),
        }
        del self._claims[claim_id]
        for rid in run_ids:
            del self._runs[rid]
        logger.info("Purged claim %s: %s", claim_id, counts)
        return counts
