"""Judge / meta-judge quality loop over an accepted producer output.

Each round asks the judge agent to score the output, then asks the
meta-judge to audit that evaluation.  The meta-judge may override the
judge's verdict.  Rounds stop on ``pass`` or after ``max_revision_rounds``
revisions, so at most ``max_revision_rounds + 1`` rounds run.

The producer is not re-invoked between rounds; every round judges the same
output and the report is advisory for the human reviewer.

Failures degrade rather than halt:
- judge failure yields a low-confidence synthetic ``pass``
- meta-judge failure leaves the round unaudited
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

from claimflow.bridge.agent_client import (
    AgentInvoker,
    AgentOptions,
    extract_json,
    load_system_prompt,
)
from claimflow.core.run_stream import RunContext
from claimflow.models.judge import (
    JudgeOutput,
    JudgeReport,
    JudgeRound,
    JudgeScores,
    JudgeVerdict,
    MetaJudgeOutput,
)
from claimflow.models.runs import RunEventType
from claimflow.models.stages import AgentKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_REVISION_ROUNDS = 2
META_CLAIM_DATA_LIMIT = 3000


class JudgeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    report: JudgeReport
    accepted: bool


def _dumps(obj: Any) -> str:
    return json.dumps(obj, indent=2, default=str)


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "... [truncated]" if len(text) > limit else text


def fallback_judge_output(error: Exception) -> JudgeOutput:
    """Synthetic verdict used when the judge itself cannot be evaluated."""
    return JudgeOutput(
        verdict="pass",
        scores=JudgeScores.uniform(3),
        optional_suggestions=[f"Judge evaluation failed: {error}. Defaulting to pass."],
        confidence=0.2,
    )


def effective_verdict(
    judge_output: JudgeOutput, meta_output: MetaJudgeOutput | None
) -> JudgeVerdict:
    if (
        meta_output is not None
        and meta_output.meta_verdict == "override"
        and meta_output.override_verdict is not None
    ):
        return meta_output.override_verdict
    return judge_output.verdict


def build_judge_prompt(
    agent_id: str,
    claim_data: Any,
    producer_output: Any,
    reasoning: str | None = None,
) -> str:
    parts = [
        f"## Producer Agent: {agent_id}",
        f"## Claim Data (Input)\n{_dumps(claim_data)}",
        f"## Producer Output\n{_dumps(producer_output)}",
    ]
    if reasoning:
        parts.append(f"## Producer Reasoning\n{reasoning}")
    parts.append(
        "Evaluate this output against your rubric. "
        "Return ONLY valid JSON matching your output schema."
    )
    return "\n\n".join(parts)


def build_meta_judge_prompt(
    producer_output: Any, judge_output: JudgeOutput, claim_data: Any
) -> str:
    return "\n\n".join([
        f"## Producer Output\n{_dumps(producer_output)}",
        f"## Judge Evaluation\n{_dumps(judge_output.model_dump(mode='json'))}",
        f"## Claim Data\n{_truncate(_dumps(claim_data), META_CLAIM_DATA_LIMIT)}",
        "Audit this judge evaluation. Return ONLY valid JSON matching your output schema.",
    ])


class JudgeLoop:
    """Runs bounded judge rounds for producer outputs.

    Parameters
    ----------
    invoker:
        Agent invocation collaborator.
    agents_dir:
        Root of the per-agent system prompt files.
    judge_model:
        Model for both judge and meta-judge; invoker default when None.
    max_revision_rounds:
        Revision rounds allowed after the first evaluation.
    """

    def __init__(
        self,
        invoker: AgentInvoker,
        *,
        agents_dir: Path = Path("agents"),
        judge_model: str | None = None,
        max_revision_rounds: int = DEFAULT_MAX_REVISION_ROUNDS,
    ) -> None:
        if max_revision_rounds < 0:
            raise ValueError("max_revision_rounds must be >= 0")
        self._invoker = invoker
        self._agents_dir = Path(agents_dir)
        self._judge_model = judge_model
        self._max_revision_rounds = max_revision_rounds

    @property
    def max_rounds(self) -> int:
        return self._max_revision_rounds + 1

    # ------------------------------------------------------------------
    # Collaborator calls
    # ------------------------------------------------------------------

    async def _call_judge(
        self, agent_id: str, claim_data: Any, producer_output: Any, reasoning: str | None
    ) -> JudgeOutput:
        system_prompt = load_system_prompt(
            self._agents_dir, AgentKind.JUDGE.value, JudgeOutput.model_json_schema()
        )
        response = await self._invoker.invoke(
            AgentKind.JUDGE.value,
            system_prompt,
            build_judge_prompt(agent_id, claim_data, producer_output, reasoning),
            AgentOptions(model=self._judge_model, enable_reasoning=True),
        )
        return JudgeOutput.model_validate(extract_json(response.text))

    async def _call_meta_judge(
        self, producer_output: Any, judge_output: JudgeOutput, claim_data: Any
    ) -> MetaJudgeOutput:
        system_prompt = load_system_prompt(
            self._agents_dir, AgentKind.META_JUDGE.value, MetaJudgeOutput.model_json_schema()
        )
        response = await self._invoker.invoke(
            AgentKind.META_JUDGE.value,
            system_prompt,
            build_meta_judge_prompt(producer_output, judge_output, claim_data),
            AgentOptions(model=self._judge_model),
        )
        return MetaJudgeOutput.model_validate(extract_json(response.text))

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def judge(
        self,
        agent_id: str,
        claim_id: str,
        claim_data: Any,
        producer_output: dict[str, Any],
        *,
        reasoning: str | None = None,
        run_context: RunContext | None = None,
    ) -> JudgeResult:
        """Evaluate *producer_output* and return the report and acceptance."""
        rounds: list[JudgeRound] = []
        final_verdict: JudgeVerdict = "fail"
        final_scores = JudgeScores.uniform(0)

        for round_no in range(1, self.max_rounds + 1):
            try:
                judge_output = await self._call_judge(
                    agent_id, claim_data, producer_output, reasoning
                )
            except Exception as exc:
                logger.warning(
                    "Judge failed for %s on claim %s (round %d): %s",
                    agent_id, claim_id, round_no, exc,
                )
                judge_output = fallback_judge_output(exc)

            meta_output: MetaJudgeOutput | None = None
            try:
                meta_output = await self._call_meta_judge(
                    producer_output, judge_output, claim_data
                )
            except Exception as exc:
                logger.warning(
                    "Meta-judge failed for %s on claim %s (round %d): %s",
                    agent_id, claim_id, round_no, exc,
                )

            verdict = effective_verdict(judge_output, meta_output)
            rounds.append(
                JudgeRound(
                    round=round_no,
                    producer_output=producer_output,
                    judge_output=judge_output,
                    meta_judge_output=meta_output,
                    effective_verdict=verdict,
                )
            )
            final_verdict = verdict
            final_scores = judge_output.scores

            if run_context is not None:
                await run_context.emit(
                    RunEventType.JUDGE_ROUND,
                    {
                        "round": round_no,
                        "agent_id": agent_id,
                        "verdict": verdict,
                        "judge": judge_output.model_dump(mode="json"),
                        "meta": meta_output.model_dump(mode="json") if meta_output else None,
                    },
                )

            if verdict == "pass":
                break

        report = JudgeReport(
            agent_id=agent_id,
            rounds=rounds,
            final_verdict=final_verdict,
            final_scores=final_scores,
            total_rounds=len(rounds),
        )
        logger.info(
            "Judged %s on claim %s: %s after %d round(s)",
            agent_id, claim_id, final_verdict, len(rounds),
        )
        return JudgeResult(report=report, accepted=final_verdict == "pass")
