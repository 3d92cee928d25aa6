"""SQLite-backed DocumentStore.

Design:
- One table per collection; each row keeps its lookup keys as columns and
  the full model as a JSON document.
- ``claim_events`` and ``run_events`` are insert-only with composite
  primary keys, so a duplicate key is rejected by the database.
- WAL journal mode for concurrent readers.
- Every blocking call runs in a worker thread via ``anyio.to_thread``.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

import anyio.to_thread

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

T = TypeVar("T")


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_CLAIMS = """
CREATE TABLE IF NOT EXISTS claims (
    claim_id    TEXT PRIMARY KEY,
    stage       TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    doc         TEXT NOT NULL
);
"""

_CREATE_CLAIM_EVENTS = """
CREATE TABLE IF NOT EXISTS claim_events (
    claim_id    TEXT NOT NULL,
    event_key   TEXT NOT NULL,
    doc         TEXT NOT NULL,
    PRIMARY KEY (claim_id, event_key)
);
"""

_CREATE_RUNS = """
CREATE TABLE IF NOT EXISTS runs (
    run_id      TEXT PRIMARY KEY,
    claim_id    TEXT NOT NULL,
    started_at  TEXT NOT NULL,
    doc         TEXT NOT NULL
);
"""

_CREATE_IDX_RUNS_CLAIM = """
CREATE INDEX IF NOT EXISTS idx_runs_claim ON runs(claim_id, started_at);
"""

_CREATE_RUN_EVENTS = """
CREATE TABLE IF NOT EXISTS run_events (
    run_id      TEXT NOT NULL,
    seq         INTEGER NOT NULL,
    doc         TEXT NOT NULL,
    PRIMARY KEY (run_id, seq)
);
"""


class SqliteStore:
    """DocumentStore persisted to a single SQLite file.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(_CREATE_CLAIMS)
            conn.execute(_CREATE_CLAIM_EVENTS)
            conn.execute(_CREATE_RUNS)
            conn.execute(_CREATE_IDX_RUNS_CLAIM)
            conn.execute(_CREATE_RUN_EVENTS)
            conn.commit()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        return await anyio.to_thread.run_sync(functools.partial(fn, *args))

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def _write_claim(self, claim: Claim) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO claims (claim_id, stage, created_at, doc) "
                "VALUES (?, ?, ?, ?)",
                (
                    claim.claim_id,
                    claim.stage.value,
                    claim.created_at.isoformat(),
                    claim.model_dump_json(),
                ),
            )
            conn.commit()

    def _read_claim(self, claim_id: str) -> Claim | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT doc FROM claims WHERE claim_id = ?", (claim_id,)
            ).fetchone()
        return Claim.model_validate_json(row[0]) if row else None

    def _update_claim(self, claim_id: str, update: dict[str, Any]) -> Claim:
        claim = self._read_claim(claim_id)
        if claim is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found.")
        updated = claim.model_copy(
            update={**update, "updated_at": datetime.now(timezone.utc)}
        )
        self._write_claim(updated)
        return updated

    def _select_claims(self, stage: ClaimStage | None) -> list[Claim]:
        with self._connect() as conn:
            if stage is None:
                rows = conn.execute(
                    "SELECT doc FROM claims ORDER BY created_at DESC"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT doc FROM claims WHERE stage = ? ORDER BY created_at DESC",
                    (stage.value,),
                ).fetchall()
        return [Claim.model_validate_json(row[0]) for row in rows]

    async def put_claim(self, claim: Claim) -> None:
        await self._run(self._write_claim, claim)

    async def get_claim(self, claim_id: str) -> Claim | None:
        return await self._run(self._read_claim, claim_id)

    async def update_claim_stage(self, claim_id: str, stage: ClaimStage) -> Claim:
        return await self._run(self._update_claim, claim_id, {"stage": stage})

    async def update_claim_compliance(
        self, claim_id: str, compliance: ComplianceDeadlines
    ) -> Claim:
        return await self._run(self._update_claim, claim_id, {"compliance": compliance})

    async def list_claims(self, stage: ClaimStage | None = None) -> list[Claim]:
        return await self._run(self._select_claims, stage)

    # ------------------------------------------------------------------
    # Claim events
    # ------------------------------------------------------------------

    def _insert_event(self, event: ClaimEvent) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO claim_events (claim_id, event_key, doc) VALUES (?, ?, ?)",
                    (event.claim_id, event.event_key, event.model_dump_json()),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise StoreConflictError(
                f"Event {event.event_key} already exists for claim {event.claim_id}."
            ) from exc

    def _select_last_event(self, claim_id: str) -> ClaimEvent | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT doc FROM claim_events WHERE claim_id = ? "
                "ORDER BY event_key DESC LIMIT 1",
                (claim_id,),
            ).fetchone()
        return ClaimEvent.model_validate_json(row[0]) if row else None

    def _select_events(self, claim_id: str) -> list[ClaimEvent]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT doc FROM claim_events WHERE claim_id = ? ORDER BY event_key ASC",
                (claim_id,),
            ).fetchall()
        return [ClaimEvent.model_validate_json(row[0]) for row in rows]

    async def put_event(self, event: ClaimEvent) -> None:
        await self._run(self._insert_event, event)

    async def get_last_event(self, claim_id: str) -> ClaimEvent | None:
        return await self._run(self._select_last_event, claim_id)

    async def get_events(self, claim_id: str) -> list[ClaimEvent]:
        return await self._run(self._select_events, claim_id)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def _write_run(self, run: Run) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO runs (run_id, claim_id, started_at, doc) "
                "VALUES (?, ?, ?, ?)",
                (run.run_id, run.claim_id, run.started_at.isoformat(), run.model_dump_json()),
            )
            conn.commit()

    def _read_run(self, run_id: str) -> Run | None:
        with self._connect() as conn:
            row = conn.execute("SELECT doc FROM runs WHERE run_id = ?", (run_id,)).fetchone()
        return Run.model_validate_json(row[0]) if row else None

    def _update_run(self, run_id: str, update: dict[str, Any]) -> Run:
        run = self._read_run(run_id)
        if run is None:
            raise RunNotFoundError(f"Run {run_id} not found.")
        updated = run.model_copy(update=update)
        self._write_run(updated)
        return updated

    def _select_runs(self, claim_id: str) -> list[Run]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT doc FROM runs WHERE claim_id = ? ORDER BY started_at ASC",
                (claim_id,),
            ).fetchall()
        return [Run.model_validate_json(row[0]) for row in rows]

    async def put_run(self, run: Run) -> None:
        await self._run(self._write_run, run)

    async def get_run(self, run_id: str) -> Run | None:
        return await self._run(self._read_run, run_id)

    async def update_run_status(
        self, run_id: str, status: RunStatus, **fields: Any
    ) -> Run:
        check_run_fields(fields)
        return await self._run(self._update_run, run_id, {"status": status, **fields})

    async def attach_judge_report(self, run_id: str, report: JudgeReport) -> Run:
        return await self._run(self._update_run, run_id, {"judge_report": report})

    async def get_runs_for_claim(self, claim_id: str) -> list[Run]:
        return await self._run(self._select_runs, claim_id)

    # ------------------------------------------------------------------
    # Run events
    # ------------------------------------------------------------------

    def _insert_run_event(self, event: RunEvent) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO run_events (run_id, seq, doc) VALUES (?, ?, ?)",
                    (event.run_id, event.seq, event.model_dump_json()),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise StoreConflictError(
                f"Run event seq {event.seq} already exists for run {event.run_id}."
            ) from exc

    def _select_run_events(self, run_id: str, from_seq: int) -> list[RunEvent]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT doc FROM run_events WHERE run_id = ? AND seq > ? ORDER BY seq ASC",
                (run_id, from_seq),
            ).fetchall()
        return [RunEvent.model_validate_json(row[0]) for row in rows]

    async def put_run_event(self, event: RunEvent) -> None:
        await self._run(self._insert_run_event, event)

    async def get_run_events(self, run_id: str, from_seq: int = 0) -> list[RunEvent]:
        return await self._run(self._select_run_events, run_id, from_seq)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def _delete_claim(self, claim_id: str) -> dict[str, int]:
        with self._connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM claims WHERE claim_id = ?", (claim_id,)
            ).fetchone()
            if exists is None:
                raise ClaimNotFoundError(f"Claim {claim_id} not found.")
            run_events = conn.execute(
                "DELETE FROM run_events WHERE run_id IN "
                "(SELECT run_id FROM runs WHERE claim_id = ?)",
                (claim_id,),
            ).rowcount
            runs = conn.execute("DELETE FROM runs WHERE claim_id = ?", (claim_id,)).rowcount
            events = conn.execute(
                "DELETE FROM claim_events WHERE claim_id = ?", (claim_id,)
            ).rowcount
            claims = conn.execute("DELETE FROM claims WHERE claim_id = ?", (claim_id,)).rowcount
            conn.commit()
        return {"claims": claims, "events": events, "runs": runs, "run_events": run_events}

    async def purge_claim(self, claim_id: str) -> dict[str, int]:
        counts = await self._run(self._delete_claim, claim_id)
        logger.info("Purged claim %s: %s", claim_id, counts)
        return counts
