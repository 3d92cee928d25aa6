"""DocumentStore contract tests, run against every backend."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from claimflow.models.claim import (
    Claim,
    Claimant,
    ComplianceDeadlines,
    LossDetails,
)
from claimflow.models.judge import JudgeReport, JudgeScores
from claimflow.models.ledger import ClaimEvent
from claimflow.models.runs import Run, RunEvent, RunStatus
from claimflow.models.stages import ClaimStage
from claimflow.storage.base import (
    ClaimNotFoundError,
    DocumentStore,
    RunNotFoundError,
    StoreConflictError,
)
from claimflow.storage.sqlite import SqliteStore

pytestmark = pytest.mark.anyio

T0 = datetime(2026, 2, 21, 10, 0, tzinfo=timezone.utc)


def _claim(claim_id: str = "CLM-000000000001", created_at: datetime = T0) -> Claim:
    return Claim(
        claim_id=claim_id,
        created_at=created_at,
        updated_at=created_at,
        policy_id="POL-1",
        claimant=Claimant(full_name="enc-name", phone="enc-phone"),
        loss=LossDetails(date_of_loss="2026-02-18"),
        compliance=ComplianceDeadlines(ack_due_at=created_at + timedelta(days=15)),
    )


def _event(claim_id: str, key: str) -> ClaimEvent:
    return ClaimEvent(
        claim_id=claim_id,
        event_key=key,
        created_at=key.split("#")[0],
        stage="FNOL_SUBMITTED",
        type="CLAIM_CREATED",
        data={"k": key},
        hash="h-" + key,
    )


class TestProtocol:
    async def test_backends_satisfy_protocol(self, store):
        assert isinstance(store, DocumentStore)


class TestClaims:
    async def test_put_get(self, store):
        claim = _claim()
        await store.put_claim(claim)
        assert await store.get_claim(claim.claim_id) == claim
        assert await store.get_claim("CLM-MISSING") is None

    async def test_update_stage(self, store):
        await store.put_claim(_claim())
        updated = await store.update_claim_stage("CLM-000000000001", ClaimStage.FRONTDESK_DONE)
        assert updated.stage == ClaimStage.FRONTDESK_DONE
        assert (await store.get_claim("CLM-000000000001")).stage == ClaimStage.FRONTDESK_DONE

    async def test_update_missing_claim(self, store):
        with pytest.raises(ClaimNotFoundError):
            await store.update_claim_stage("CLM-MISSING", ClaimStage.FRONTDESK_DONE)

    async def test_update_compliance(self, store):
        claim = _claim()
        await store.put_claim(claim)
        due = T0 + timedelta(days=30)
        updated = await store.update_claim_compliance(
            claim.claim_id, claim.compliance.model_copy(update={"payment_due_at": due})
        )
        assert updated.compliance.payment_due_at == due
        assert updated.compliance.ack_due_at == claim.compliance.ack_due_at

    async def test_list_claims_newest_first_and_filtered(self, store):
        await store.put_claim(_claim("CLM-A", T0))
        await store.put_claim(_claim("CLM-B", T0 + timedelta(hours=1)))
        await store.update_claim_stage("CLM-A", ClaimStage.FRONTDESK_DONE)
        assert [c.claim_id for c in await store.list_claims()] == ["CLM-B", "CLM-A"]
        assert [c.claim_id for c in await store.list_claims(ClaimStage.FRONTDESK_DONE)] == ["CLM-A"]


class TestEvents:
    async def test_ordered_by_event_key(self, store):
        keys = [
            "2026-02-21T10:00:00.000002Z#B#00000000",
            "2026-02-21T10:00:00.000001Z#A#00000000",
            "2026-02-21T10:00:00.000003Z#C#00000000",
        ]
        for key in keys:
            await store.put_event(_event("CLM-1", key))
        events = await store.get_events("CLM-1")
        assert [e.event_key for e in events] == sorted(keys)
        assert (await store.get_last_event("CLM-1")).event_key == max(keys)

    async def test_empty_chain(self, store):
        assert await store.get_events("CLM-1") == []
        assert await store.get_last_event("CLM-1") is None

    async def test_duplicate_key_rejected(self, store):
        key = "2026-02-21T10:00:00.000001Z#A#00000000"
        await store.put_event(_event("CLM-1", key))
        with pytest.raises(StoreConflictError):
            await store.put_event(_event("CLM-1", key))

    async def test_event_round_trip_preserves_fields(self, store):
        event = _event("CLM-1", "2026-02-21T10:00:00.000001Z#A#00000000").model_copy(
            update={"prev_hash": "p" * 64, "actor_id": "reviewer", "run_id": "r1"}
        )
        await store.put_event(event)
        assert (await store.get_events("CLM-1"))[0] == event


class TestRuns:
    async def test_lifecycle(self, store):
        run = Run(claim_id="CLM-1", stage="FRONTDESK_DONE", agent_id="frontdesk")
        await store.put_run(run)
        assert (await store.get_run(run.run_id)).status == RunStatus.RUNNING

        done = await store.update_run_status(
            run.run_id,
            RunStatus.SUCCEEDED,
            ended_at=T0,
            output_json={"ok": True},
            model="fake/model",
        )
        assert done.status == RunStatus.SUCCEEDED
        assert done.is_terminal
        assert (await store.get_run(run.run_id)).output_json == {"ok": True}

    async def test_unknown_completion_field_rejected(self, store):
        run = Run(claim_id="CLM-1", stage="FRONTDESK_DONE", agent_id="frontdesk")
        await store.put_run(run)
        with pytest.raises(ValueError, match="claim_id"):
            await store.update_run_status(run.run_id, RunStatus.FAILED, claim_id="CLM-2")

    async def test_missing_run(self, store):
        assert await store.get_run("nope") is None
        with pytest.raises(RunNotFoundError):
            await store.update_run_status("nope", RunStatus.FAILED)

    async def test_attach_judge_report(self, store):
        run = Run(claim_id="CLM-1", stage="FRONTDESK_DONE", agent_id="frontdesk")
        await store.put_run(run)
        report = JudgeReport(
            agent_id="frontdesk",
            final_verdict="pass",
            final_scores=JudgeScores.uniform(4),
            total_rounds=1,
        )
        updated = await store.attach_judge_report(run.run_id, report)
        assert updated.judge_report == report
        assert (await store.get_run(run.run_id)).judge_report.final_verdict == "pass"

    async def test_runs_for_claim_in_start_order(self, store):
        first = Run(claim_id="CLM-1", stage="A", agent_id="a", started_at=T0)
        second = Run(claim_id="CLM-1", stage="B", agent_id="b", started_at=T0 + timedelta(seconds=1))
        other = Run(claim_id="CLM-2", stage="A", agent_id="a", started_at=T0)
        for run in (second, other, first):
            await store.put_run(run)
        runs = await store.get_runs_for_claim("CLM-1")
        assert [r.run_id for r in runs] == [first.run_id, second.run_id]


class TestRunEvents:
    async def test_from_seq_is_exclusive(self, store):
        for seq in (3, 1, 2):
            await store.put_run_event(RunEvent(run_id="r1", seq=seq, event_type="x"))
        assert [e.seq for e in await store.get_run_events("r1")] == [1, 2, 3]
        assert [e.seq for e in await store.get_run_events("r1", from_seq=1)] == [2, 3]
        assert await store.get_run_events("r1", from_seq=3) == []

    async def test_duplicate_seq_rejected(self, store):
        await store.put_run_event(RunEvent(run_id="r1", seq=1, event_type="x"))
        with pytest.raises(StoreConflictError):
            await store.put_run_event(RunEvent(run_id="r1", seq=1, event_type="y"))


class TestPurge:
    async def test_purge_removes_everything_for_claim(self, store):
        await store.put_claim(_claim("CLM-A"))
        await store.put_claim(_claim("CLM-B"))
        await store.put_event(_event("CLM-A", "2026-02-21T10:00:00.000001Z#A#00000000"))
        await store.put_event(_event("CLM-B", "2026-02-21T10:00:00.000001Z#A#00000000"))
        run = Run(claim_id="CLM-A", stage="A", agent_id="a")
        await store.put_run(run)
        await store.put_run_event(RunEvent(run_id=run.run_id, seq=1, event_type="x"))

        counts = await store.purge_claim("CLM-A")
        assert counts == {"claims": 1, "events": 1, "runs": 1, "run_events": 1}
        assert await store.get_claim("CLM-A") is None
        assert await store.get_events("CLM-A") == []
        assert await store.get_run(run.run_id) is None
        assert await store.get_run_events(run.run_id) == []
        # Other claims untouched
        assert await store.get_claim("CLM-B") is not None
        assert len(await store.get_events("CLM-B")) == 1

    async def test_purge_missing_claim(self, store):
        with pytest.raises(ClaimNotFoundError):
            await store.purge_claim("CLM-MISSING")


class TestSqlitePersistence:
    async def test_survives_reopen(self, tmp_path):
        path = tmp_path / "claims.db"
        await SqliteStore(path).put_claim(_claim())
        reopened = SqliteStore(path)
        assert (await reopened.get_claim("CLM-000000000001")).policy_id == "POL-1"
