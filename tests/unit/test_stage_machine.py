"""Tests for the claim stage state machine."""

from __future__ import annotations

import pytest

from claimflow.core.intake import IntakeService
from claimflow.core.stage_machine import (
    InvalidTransitionError,
    StageConflictError,
    StageMachine,
)
from claimflow.models.claim import ClaimSubmission
from claimflow.models.stages import ALLOWED_TRANSITIONS, TERMINAL_STAGES, ClaimStage
from claimflow.storage.base import ClaimNotFoundError

pytestmark = pytest.mark.anyio


class TestTransitionTable:
    async def test_terminal_stages(self):
        assert TERMINAL_STAGES == {ClaimStage.PAID, ClaimStage.CLOSED_NO_PAY}

    async def test_every_stage_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(ClaimStage)

    async def test_graph_reaches_terminals_from_fnol(self):
        seen = set()
        frontier = [ClaimStage.FNOL_SUBMITTED]
        while frontier:
            stage = frontier.pop()
            if stage in seen:
                continue
            seen.add(stage)
            frontier.extend(ALLOWED_TRANSITIONS[stage])
        assert seen == set(ClaimStage)


class TestAdvance:
    async def test_valid_advance(
        self, memory_store, intake: IntakeService, submission: ClaimSubmission
    ):
        claim = await intake.submit(submission)
        machine = StageMachine(memory_store)
        updated = await machine.advance(claim.claim_id, ClaimStage.FRONTDESK_DONE)
        assert updated.stage == ClaimStage.FRONTDESK_DONE
        assert updated.updated_at >= claim.updated_at
        stored = await memory_store.get_claim(claim.claim_id)
        assert stored.stage == ClaimStage.FRONTDESK_DONE

    async def test_skip_is_rejected(
        self, memory_store, intake: IntakeService, submission: ClaimSubmission
    ):
        claim = await intake.submit(submission)
        machine = StageMachine(memory_store)
        with pytest.raises(InvalidTransitionError, match="FNOL_SUBMITTED to COVERAGE_DONE"):
            await machine.advance(claim.claim_id, ClaimStage.COVERAGE_DONE)

    async def test_expected_stage_guard(
        self, memory_store, intake: IntakeService, submission: ClaimSubmission
    ):
        claim = await intake.submit(submission)
        machine = StageMachine(memory_store)
        with pytest.raises(StageConflictError, match="expected FRONTDESK_DONE"):
            await machine.advance(
                claim.claim_id, ClaimStage.COVERAGE_DONE, expected=ClaimStage.FRONTDESK_DONE
            )

    async def test_missing_claim(self, memory_store):
        with pytest.raises(ClaimNotFoundError):
            await StageMachine(memory_store).advance("CLM-MISSING", ClaimStage.FRONTDESK_DONE)

    async def test_available_transitions(
        self, memory_store, intake: IntakeService, submission: ClaimSubmission
    ):
        claim = await intake.submit(submission)
        machine = StageMachine(memory_store)
        assert await machine.get_available_transitions(claim.claim_id) == {
            ClaimStage.FRONTDESK_DONE
        }

    async def test_is_terminal(self):
        assert StageMachine.is_terminal(ClaimStage.PAID)
        assert not StageMachine.is_terminal(ClaimStage.PENDING_REVIEW)
