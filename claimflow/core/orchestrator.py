"""Pipeline orchestrator: drives a claim through its agent stages.

The orchestrator wires together the DocumentStore, AuditLedger,
StageMachine, SchemaValidator, JudgeLoop and the agent invoker.  One pass
walks ``PIPELINE_STEPS`` in order, running every step whose ``from_stage``
matches the claim's current stage, and halts on the first fatal failure.

Step lifecycle:
1. Build the agent prompt from a decrypted view of the claim
2. Persist a RUNNING Run and append STAGE_STARTED
3. Invoke the agent, parse its JSON, validate it against the stage schema
4. Mark the Run SUCCEEDED, append STAGE_COMPLETED, advance the stage
5. Judge the accepted output and attach the report to the Run

A claim that finishes the automated stages is handed to a human reviewer
(PENDING_REVIEW).  ``submit_decision`` records the reviewer's call and
either runs the finance step or closes the claim without payment.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict

from claimflow.bridge.agent_client import (
    AgentInvoker,
    AgentOptions,
    AgentOutputError,
    extract_json,
    load_system_prompt,
)
from claimflow.bridge.pii_cipher import PiiCipher
from claimflow.core.audit_ledger import AuditLedger
from claimflow.core.compliance_clock import compute_payment_deadline
from claimflow.core.judge_loop import JudgeLoop
from claimflow.core.pricing import DEFAULT_SALVAGE_PCT, price_vision_assessment
from claimflow.core.prompts import (
    PromptInputs,
    build_prompt,
    decrypted_claim_view,
    vision_prompt,
    vision_unavailable,
)
from claimflow.core.run_stream import RunContext
from claimflow.core.stage_machine import StageConflictError, StageMachine
from claimflow.core.validators import SchemaValidator
from claimflow.models.claim import Claim, HumanDecision
from claimflow.models.ledger import AuditContext, EventType
from claimflow.models.outputs import STAGE_OUTPUT_MODELS, VisionAssessment
from claimflow.models.runs import Run, RunEventType, RunStatus
from claimflow.models.stages import (
    FINANCE_STEP,
    LAST_AUTOMATED_STAGE,
    PIPELINE_STEPS,
    REVIEW_STAGE,
    AgentKind,
    ClaimStage,
    PipelineStep,
)
from claimflow.storage.base import DocumentStore

logger = logging.getLogger(__name__)

UPSTREAM_ERROR = "UPSTREAM_ERROR"
INVALID_OUTPUT = "INVALID_OUTPUT"
SCHEMA_VALIDATION_FAILED = "SCHEMA_VALIDATION_FAILED"

_RAW_EXCERPT = 500
_ERROR_EXCERPT = 200


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class PipelineResult(BaseModel):
    """Outcome of one ``run_pipeline`` pass."""

    model_config = ConfigDict(frozen=True)

    claim_id: str
    final_stage: ClaimStage
    stages_completed: list[str] = []
    stage_outputs: dict[str, dict[str, Any]] = {}
    run_ids: dict[str, str] = {}
    errors: list[str] = []

    @property
    def ok(self) -> bool:
        return not self.errors


class FinanceResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    claim_id: str
    final_stage: ClaimStage
    run_id: str | None = None
    output: dict[str, Any] | None = None
    payment_due_at: datetime | None = None
    errors: list[str] = []

    @property
    def ok(self) -> bool:
        return not self.errors


class DecisionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    claim_id: str
    decision: dict[str, Any]
    final_stage: ClaimStage
    finance: FinanceResult | None = None


class _StepOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str
    output: dict[str, Any] | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class PipelineOrchestrator:
    """Central claim pipeline coordinator.

    Parameters
    ----------
    store:
        Persistence for claims, ledger, runs and run events.
    cipher:
        Initialised PII key holder; prompts read claims through it.
    invoker:
        Agent invocation collaborator.
    validator:
        Stage output validator; the closed pydantic models by default.
    judge_loop:
        Judge loop over accepted outputs; built from *invoker* by default.
    agents_dir:
        Root of the per-agent ``SYSTEM_PROMPT.md`` files.
    vision_model:
        Model override for the damage-photo pre-step.
    salvage_pct:
        Salvage share of ACV used in the pre-step's total-loss call.
    clock:
        Source of "now" for the ledger; defaults to UTC wall time.
    """

    def __init__(
        self,
        store: DocumentStore,
        cipher: PiiCipher,
        invoker: AgentInvoker,
        *,
        validator: SchemaValidator | None = None,
        judge_loop: JudgeLoop | None = None,
        agents_dir: Path = Path("agents"),
        vision_model: str | None = None,
        salvage_pct: float = DEFAULT_SALVAGE_PCT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.cipher = cipher
        self.invoker = invoker
        self.agents_dir = Path(agents_dir)
        self.vision_model = vision_model
        self.salvage_pct = salvage_pct

        self.ledger = AuditLedger(store, clock=clock)
        self.stage_machine = StageMachine(store)
        self.validator = validator or SchemaValidator()
        self.judge_loop = judge_loop or JudgeLoop(invoker, agents_dir=self.agents_dir)

    # ------------------------------------------------------------------
    # Automated pass
    # ------------------------------------------------------------------

    async def run_pipeline(self, claim_id: str, *, actor_id: str = "system") -> PipelineResult:
        """Run every automated step the claim is ready for.

        A claim that completes the last automated stage is moved to
        PENDING_REVIEW.  Fatal step failures halt the pass and are
        reported in ``errors``; the claim stays at its last completed stage.
        """
        claim = await self.stage_machine.load(claim_id)
        logger.info("Pipeline pass for %s starting at %s", claim_id, claim.stage.value)

        completed: list[str] = []
        outputs: dict[str, dict[str, Any]] = {}
        run_ids: dict[str, str] = {}
        errors: list[str] = []

        for step in PIPELINE_STEPS:
            if claim.stage != step.from_stage:
                continue

            outcome = await self._execute_step(claim, step, actor_id=actor_id)
            run_ids[step.to_stage.value] = outcome.run_id
            if outcome.error is not None:
                errors.append(outcome.error)
                break

            completed.append(step.to_stage.value)
            outputs[step.to_stage.value] = outcome.output or {}
            claim = await self.stage_machine.load(claim_id)

        if not errors and claim.stage == LAST_AUTOMATED_STAGE:
            claim = await self.stage_machine.advance(
                claim_id, REVIEW_STAGE, expected=LAST_AUTOMATED_STAGE
            )
            await self.ledger.append(
                claim_id,
                REVIEW_STAGE,
                EventType.STAGE_COMPLETED,
                {"handoff": "human_review"},
                AuditContext(actor_id=actor_id),
            )
            logger.info("Claim %s handed off for human review", claim_id)

        return PipelineResult(
            claim_id=claim_id,
            final_stage=claim.stage,
            stages_completed=completed,
            stage_outputs=outputs,
            run_ids=run_ids,
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Human decision handoff
    # ------------------------------------------------------------------

    async def submit_decision(
        self, claim_id: str, decision: HumanDecision
    ) -> DecisionResult:
        """Record a reviewer decision on a claim held at PENDING_REVIEW.

        Approve runs the finance step; deny closes the claim without
        payment.  A finance failure leaves the claim at FINAL_DECISION_DONE.
        """
        claim = await self.stage_machine.load(claim_id)
        if claim.stage != REVIEW_STAGE:
            raise StageConflictError(
                f"Claim {claim_id} is in stage {claim.stage.value}, not {REVIEW_STAGE.value}."
            )

        decision_data = {
            "final_outcome": decision.final_outcome,
            "rationale": decision.rationale,
            "approve_amount_cap": decision.approve_amount_cap,
            "decided_by": decision.decided_by,
            "decided_at": decision.decided_at.isoformat(),
        }
        await self.ledger.append(
            claim_id,
            ClaimStage.FINAL_DECISION_DONE,
            EventType.REVIEWER_DECISION,
            decision_data,
            AuditContext(actor_id=decision.decided_by),
        )
        claim = await self.stage_machine.advance(
            claim_id, ClaimStage.FINAL_DECISION_DONE, expected=REVIEW_STAGE
        )

        finance: FinanceResult | None = None
        if decision.decision == "approve":
            finance = await self.run_finance_stage(claim_id, decision)
            final_stage = finance.final_stage
        else:
            await self.ledger.append(
                claim_id,
                ClaimStage.CLOSED_NO_PAY,
                EventType.STAGE_COMPLETED,
                {"reason": "denied", "rationale": decision.rationale},
                AuditContext(actor_id=decision.decided_by),
            )
            claim = await self.stage_machine.advance(
                claim_id, ClaimStage.CLOSED_NO_PAY, expected=ClaimStage.FINAL_DECISION_DONE
            )
            final_stage = claim.stage

        logger.info("Decision on %s: %s -> %s", claim_id, decision.decision, final_stage.value)
        return DecisionResult(
            claim_id=claim_id,
            decision=decision_data,
            final_stage=final_stage,
            finance=finance,
        )

    async def run_finance_stage(
        self, claim_id: str, decision: HumanDecision
    ) -> FinanceResult:
        """Execute the payment step for an approved claim."""
        if decision.decision != "approve":
            raise ValueError("The finance step runs only for an approved decision.")

        claim = await self.stage_machine.load(claim_id)
        if claim.stage != FINANCE_STEP.from_stage:
            raise StageConflictError(
                f"Claim {claim_id} is in stage {claim.stage.value}, "
                f"not {FINANCE_STEP.from_stage.value}."
            )

        outcome = await self._execute_step(
            claim,
            FINANCE_STEP,
            actor_id=decision.decided_by,
            decision=decision.model_dump(mode="json"),
        )
        if outcome.error is not None:
            return FinanceResult(
                claim_id=claim_id,
                final_stage=claim.stage,
                run_id=outcome.run_id,
                errors=[outcome.error],
            )

        payment_due_at = compute_payment_deadline(decision.decided_at)
        claim = await self.stage_machine.load(claim_id)
        claim = await self.store.update_claim_compliance(
            claim_id,
            claim.compliance.model_copy(update={"payment_due_at": payment_due_at}),
        )
        return FinanceResult(
            claim_id=claim_id,
            final_stage=claim.stage,
            run_id=outcome.run_id,
            output=outcome.output,
            payment_due_at=payment_due_at,
        )

    # ------------------------------------------------------------------
    # Step execution
    # ------------------------------------------------------------------

    async def _execute_step(
        self,
        claim: Claim,
        step: PipelineStep,
        *,
        actor_id: str = "system",
        decision: dict[str, Any] | None = None,
    ) -> _StepOutcome:
        claim_id = claim.claim_id
        agent_id = step.agent.value
        claim_view = decrypted_claim_view(claim, self.cipher)

        vision: dict[str, Any] | None = None
        vision_event: tuple[RunEventType, dict[str, Any]] | None = None
        if step.agent == AgentKind.ASSESSOR:
            vision, vision_event = await self._vision_context(claim, claim_view)

        prompt = build_prompt(
            step.agent,
            PromptInputs(
                claim=claim_view,
                prior_outputs=await self._prior_outputs(claim_id),
                vision=vision,
                decision=decision,
            ),
        )

        run = Run(
            claim_id=claim_id,
            stage=step.to_stage.value,
            agent_id=agent_id,
            actor_id=actor_id,
            input_prompt=prompt,
        )
        await self.store.put_run(run)
        run_ctx = RunContext(self.store, run.run_id)
        audit = AuditContext(actor_id=actor_id, run_id=run.run_id)

        await run_ctx.emit(
            RunEventType.STAGE_STARTED,
            {"agent_id": agent_id, "from_stage": step.from_stage.value, "to_stage": step.to_stage.value},
        )
        if vision_event is not None:
            await run_ctx.emit(*vision_event)
        await self.ledger.append(
            claim_id,
            step.to_stage,
            EventType.STAGE_STARTED,
            {"agent": agent_id, "run_id": run.run_id},
            audit,
        )

        # 1. Invoke
        system_prompt = load_system_prompt(
            self.agents_dir, agent_id, self.validator.json_schema(step.validator_key)
        )
        try:
            response = await self.invoker.invoke(agent_id, system_prompt, prompt)
        except Exception as exc:
            # Any invocation failure is recorded as upstream.
            message = f"Agent {agent_id} call failed: {exc}"
            await self._fail(
                run, run_ctx, step, audit,
                error=message,
                error_type=UPSTREAM_ERROR,
                event_type=EventType.STAGE_ERROR,
                data={"error": str(exc), "error_type": UPSTREAM_ERROR},
            )
            return _StepOutcome(run_id=run.run_id, error=message)

        await run_ctx.emit(
            RunEventType.AGENT_RESPONDED,
            {"model": response.model, "usage": response.usage, "chars": len(response.text)},
        )

        # 2. Parse
        try:
            parsed = extract_json(response.text)
        except AgentOutputError as exc:
            message = (
                f"Agent {agent_id} returned invalid JSON: {response.text[:_ERROR_EXCERPT]}"
            )
            await self._fail(
                run, run_ctx, step, audit,
                error=message,
                error_type=INVALID_OUTPUT,
                event_type=EventType.STAGE_ERROR,
                data={
                    "error": "Invalid JSON",
                    "error_type": INVALID_OUTPUT,
                    "detail": str(exc),
                    "raw": response.text[:_RAW_EXCERPT],
                },
                output_text=response.text,
            )
            return _StepOutcome(run_id=run.run_id, error=message)

        # 3. Validate
        validation = self.validator.validate(step.validator_key, parsed)
        if not validation.ok:
            message = (
                f"Agent {agent_id} output failed schema validation: "
                f"{len(validation.errors)} error(s)"
            )
            await self._fail(
                run, run_ctx, step, audit,
                error=message,
                error_type=SCHEMA_VALIDATION_FAILED,
                event_type=EventType.SCHEMA_VALIDATION_FAILED,
                data={"errors": validation.errors, "raw_output": parsed},
                output_text=response.text,
            )
            return _StepOutcome(run_id=run.run_id, error=message)

        output = validation.data or {}

        # 4. Accept and advance
        await self.store.update_run_status(
            run.run_id,
            RunStatus.SUCCEEDED,
            ended_at=datetime.now(timezone.utc),
            output_json=output,
            output_text=response.text,
            model=response.model,
            usage=response.usage,
            reasoning=response.reasoning,
        )
        await self.ledger.append(
            claim_id, step.to_stage, EventType.STAGE_COMPLETED, output, audit
        )
        await self.stage_machine.advance(claim_id, step.to_stage, expected=step.from_stage)

        # 5. Judge; advisory, never rolls the stage back
        verdict: str | None = None
        try:
            judged = await self.judge_loop.judge(
                agent_id,
                claim_id,
                claim_view,
                output,
                reasoning=response.reasoning,
                run_context=run_ctx,
            )
            await self.store.attach_judge_report(run.run_id, judged.report)
            await self.ledger.append(
                claim_id,
                step.to_stage,
                EventType.JUDGE_COMPLETED,
                {**judged.report.summary(), "accepted": judged.accepted},
                audit,
            )
            verdict = judged.report.final_verdict
        except Exception as exc:
            logger.warning("Judge loop failed for %s on %s: %s", agent_id, claim_id, exc)
            await self.ledger.append(
                claim_id,
                step.to_stage,
                EventType.JUDGE_FAILED,
                {"agent_id": agent_id, "error": str(exc)},
                audit,
            )

        await run_ctx.emit(
            RunEventType.STAGE_COMPLETED,
            {"to_stage": step.to_stage.value, "judge_verdict": verdict},
        )
        logger.info("Claim %s: %s completed %s", claim_id, agent_id, step.to_stage.value)
        return _StepOutcome(run_id=run.run_id, output=output)

    async def _fail(
        self,
        run: Run,
        run_ctx: RunContext,
        step: PipelineStep,
        audit: AuditContext,
        *,
        error: str,
        error_type: str,
        event_type: EventType,
        data: dict[str, Any],
        output_text: str | None = None,
    ) -> None:
        logger.warning("Claim %s step %s failed (%s): %s", run.claim_id, step.agent.value, error_type, error)
        # stage.failed must land before the terminal status.
        await run_ctx.emit(
            RunEventType.STAGE_FAILED, {"error": error, "error_type": error_type}
        )
        await self.store.update_run_status(
            run.run_id,
            RunStatus.FAILED,
            ended_at=datetime.now(timezone.utc),
            error=error,
            error_type=error_type,
            output_text=output_text,
        )
        await self.ledger.append(run.claim_id, step.to_stage, event_type, data, audit)

    # ------------------------------------------------------------------
    # Step inputs
    # ------------------------------------------------------------------

    async def _prior_outputs(self, claim_id: str) -> dict[str, Any]:
        """Latest accepted output per stage, read back from the ledger."""
        outputs: dict[str, Any] = {}
        for event in await self.ledger.get_events(claim_id):
            if event.type == EventType.STAGE_COMPLETED.value and event.stage in STAGE_OUTPUT_MODELS:
                outputs[event.stage] = event.data
        return outputs

    async def _vision_context(
        self, claim: Claim, claim_view: dict[str, Any]
    ) -> tuple[dict[str, Any], tuple[RunEventType, dict[str, Any]]]:
        """Damage-photo pre-assessment for the assessor, or a placeholder.

        Attachment keys are handed to the invoker as image references.
        """
        photos = claim.damage_photos()
        if not photos:
            reason = "no damage photos"
            return vision_unavailable(reason), (RunEventType.VISION_DEGRADED, {"reason": reason})

        agent_id = AgentKind.ASSESSOR_VISION.value
        try:
            response = await self.invoker.invoke(
                agent_id,
                load_system_prompt(
                    self.agents_dir, agent_id, VisionAssessment.model_json_schema()
                ),
                vision_prompt(claim_view, len(photos)),
                AgentOptions(model=self.vision_model, images=photos),
            )
            assessment = VisionAssessment.model_validate(extract_json(response.text))
        except Exception as exc:
            logger.warning("Vision pre-step failed for %s: %s", claim.claim_id, exc)
            reason = f"vision failed: {exc}"
            return vision_unavailable(reason), (RunEventType.VISION_DEGRADED, {"reason": reason})

        estimate = price_vision_assessment(
            assessment, claim.vehicle, claim.loss, salvage_pct=self.salvage_pct
        )
        context = {
            "status": "available",
            "photo_count": len(photos),
            **assessment.model_dump(mode="json"),
            **estimate.model_dump(mode="json"),
        }
        return context, (
            RunEventType.VISION_COMPLETED,
            {
                "photo_count": len(photos),
                "damage_items": len(assessment.detected_damage),
                "confidence": assessment.confidence,
                "estimate_high": estimate.totals.estimate_range.high,
                "total_loss_recommended": estimate.total_loss.recommended,
            },
        )
