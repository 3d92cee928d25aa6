"""DocumentStore protocol: the persistence contract every backend honours.

Layout
------
- claims keyed by ``claim_id``
- claim events keyed by (``claim_id``, ``event_key``), read ascending
- runs keyed by ``run_id``
- run events keyed by (``run_id``, ``seq``), read ascending

Every write is keyed by a claim or run id, so independent claims never
contend.  Events and run events are insert-only; inserting an existing key
raises ``StoreConflictError``.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from claimflow.models.claim import Claim, ComplianceDeadlines
from claimflow.models.judge import JudgeReport
from claimflow.models.ledger import ClaimEvent
from claimflow.models.runs import Run, RunEvent, RunStatus
from claimflow.models.stages import ClaimStage


class ClaimNotFoundError(RuntimeError):
    """Raised when a claim id does not resolve to a stored claim."""


class RunNotFoundError(RuntimeError):
    """Raised when a run id does not resolve to a stored run."""


class StoreConflictError(RuntimeError):
    """Raised when an insert-only key is written twice."""


@runtime_checkable
class DocumentStore(Protocol):
    """Async persistence for claims, their ledger, runs and run events."""

    # Claims
    async def put_claim(self, claim: Claim) -> None: ...

    async def get_claim(self, claim_id: str) -> Claim | None: ...

    async def update_claim_stage(self, claim_id: str, stage: ClaimStage) -> Claim: ...

    async def update_claim_compliance(
        self, claim_id: str, compliance: ComplianceDeadlines
    ) -> Claim: ...

    async def list_claims(self, stage: ClaimStage | None = None) -> list[Claim]: ...

    # Claim events (audit ledger)
    async def put_event(self, event: ClaimEvent) -> None: ...

    async def get_last_event(self, claim_id: str) -> ClaimEvent | None: ...

    async def get_events(self, claim_id: str) -> list[ClaimEvent]: ...

    # Runs
    async def put_run(self, run: Run) -> None: ...

    async def get_run(self, run_id: str) -> Run | None: ...

    async def update_run_status(
        self, run_id: str, status: RunStatus, **fields: Any
    ) -> Run: ...

    async def attach_judge_report(self, run_id: str, report: JudgeReport) -> Run: ...

    async def get_runs_for_claim(self, claim_id: str) -> list[Run]: ...

    # Run events
    async def put_run_event(self, event: RunEvent) -> None: ...

    async def get_run_events(self, run_id: str, from_seq: int = 0) -> list[RunEvent]: ...

    # Administration
    async def purge_claim(self, claim_id: str) -> dict[str, int]: ...


# Run fields that may change when a run completes.
RUN_COMPLETION_FIELDS: frozenset[str] = frozenset({
    "ended_at",
    "output_json",
    "output_text",
    "model",
    "usage",
    "reasoning",
    "error",
    "error_type",
})


def check_run_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - RUN_COMPLETION_FIELDS
    if unknown:
        raise ValueError(f"Run fields not updatable at completion: {sorted(unknown)}")
