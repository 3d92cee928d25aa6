"""Tests for the judge / meta-judge quality loop."""

from __future__ import annotations

import pytest

from claimflow.bridge.agent_client import UpstreamError
from claimflow.core.judge_loop import (
    META_CLAIM_DATA_LIMIT,
    JudgeLoop,
    build_judge_prompt,
    build_meta_judge_prompt,
    effective_verdict,
    fallback_judge_output,
)
from claimflow.core.run_stream import RunContext
from claimflow.models.judge import JudgeOutput, JudgeScores, MetaJudgeOutput

pytestmark = pytest.mark.anyio

CLAIM = {"claim_id": "CLM-1", "policy_id": "POL-1"}


def _judge(verdict: str, score: int = 3) -> dict:
    return {
        "verdict": verdict,
        "scores": JudgeScores.uniform(score).model_dump(),
        "required_fixes": ["fix it"] if verdict != "pass" else [],
        "confidence": 0.7,
    }


@pytest.fixture
def loop(fake_invoker, tmp_path) -> JudgeLoop:
    return JudgeLoop(fake_invoker, agents_dir=tmp_path, judge_model="judge/model")


class TestVerdictRules:
    def test_affirm_keeps_judge_verdict(self):
        judge = JudgeOutput.model_validate(_judge("revise"))
        meta = MetaJudgeOutput(meta_verdict="affirm")
        assert effective_verdict(judge, meta) == "revise"

    def test_override_replaces_verdict(self):
        judge = JudgeOutput.model_validate(_judge("revise"))
        meta = MetaJudgeOutput(meta_verdict="override", override_verdict="pass")
        assert effective_verdict(judge, meta) == "pass"

    def test_override_without_verdict_ignored(self):
        judge = JudgeOutput.model_validate(_judge("fail"))
        assert effective_verdict(judge, MetaJudgeOutput(meta_verdict="override")) == "fail"

    def test_missing_meta_keeps_judge_verdict(self):
        assert effective_verdict(JudgeOutput.model_validate(_judge("pass")), None) == "pass"

    def test_fallback_output(self):
        out = fallback_judge_output(RuntimeError("boom"))
        assert out.verdict == "pass"
        assert out.scores == JudgeScores.uniform(3)
        assert out.confidence == 0.2
        assert out.optional_suggestions == ["Judge evaluation failed: boom. Defaulting to pass."]


class TestPrompts:
    def test_judge_prompt_sections(self):
        prompt = build_judge_prompt("assessor", CLAIM, {"x": 1}, reasoning="because")
        assert "## Producer Agent: assessor" in prompt
        assert "## Claim Data (Input)" in prompt
        assert "## Producer Output" in prompt
        assert "## Producer Reasoning\nbecause" in prompt

    def test_judge_prompt_without_reasoning(self):
        assert "Producer Reasoning" not in build_judge_prompt("assessor", CLAIM, {})

    def test_meta_prompt_truncates_claim_data(self):
        big = {"notes": "x" * (META_CLAIM_DATA_LIMIT * 2)}
        prompt = build_meta_judge_prompt({}, JudgeOutput.model_validate(_judge("pass")), big)
        assert prompt.count("x") < META_CLAIM_DATA_LIMIT + 100
        assert "... [truncated]" in prompt


class TestLoop:
    async def test_pass_in_one_round(self, loop, fake_invoker):
        result = await loop.judge("frontdesk", "CLM-1", CLAIM, {"out": 1})
        assert result.accepted
        assert result.report.total_rounds == 1
        assert result.report.final_verdict == "pass"
        assert result.report.rounds[0].meta_judge_output.meta_verdict == "affirm"

        judge_call = fake_invoker.calls_for("judge")[0]
        assert judge_call["options"].enable_reasoning is True
        assert judge_call["options"].model == "judge/model"
        assert "## Producer Agent: frontdesk" in judge_call["user_message"]
        assert len(fake_invoker.calls_for("metajudge")) == 1

    async def test_bounded_by_max_rounds(self, loop, fake_invoker):
        fake_invoker.script("judge", _judge("revise"), _judge("revise"), _judge("fail", 1))
        result = await loop.judge("assessor", "CLM-1", CLAIM, {"out": 1})
        assert loop.max_rounds == 3
        assert result.report.total_rounds == 3
        assert [r.effective_verdict for r in result.report.rounds] == ["revise", "revise", "fail"]
        assert result.report.final_verdict == "fail"
        assert result.report.final_scores == JudgeScores.uniform(1)
        assert not result.accepted
        assert len(fake_invoker.calls_for("judge")) == 3

    async def test_same_output_judged_every_round(self, loop, fake_invoker):
        fake_invoker.script("judge", _judge("revise"), _judge("revise"))
        result = await loop.judge("assessor", "CLM-1", CLAIM, {"out": 7})
        assert all(r.producer_output == {"out": 7} for r in result.report.rounds)
        assert not fake_invoker.calls_for("assessor")

    async def test_zero_revision_rounds(self, fake_invoker, tmp_path):
        loop = JudgeLoop(fake_invoker, agents_dir=tmp_path, max_revision_rounds=0)
        fake_invoker.script("judge", _judge("revise"))
        result = await loop.judge("assessor", "CLM-1", CLAIM, {})
        assert result.report.total_rounds == 1
        assert not result.accepted

    async def test_negative_rounds_rejected(self, fake_invoker):
        with pytest.raises(ValueError):
            JudgeLoop(fake_invoker, max_revision_rounds=-1)

    async def test_meta_override_ends_loop(self, loop, fake_invoker):
        fake_invoker.script("judge", _judge("revise"))
        fake_invoker.script(
            "metajudge",
            {"meta_verdict": "override", "override_verdict": "pass", "issues": ["too strict"]},
        )
        result = await loop.judge("assessor", "CLM-1", CLAIM, {})
        assert result.accepted
        assert result.report.total_rounds == 1
        assert result.report.rounds[0].judge_output.verdict == "revise"

    async def test_judge_failure_defaults_to_pass(self, loop, fake_invoker):
        fake_invoker.script("judge", UpstreamError(503, "down"))
        result = await loop.judge("assessor", "CLM-1", CLAIM, {})
        assert result.accepted
        judge_output = result.report.rounds[0].judge_output
        assert judge_output.confidence == 0.2
        assert "Judge evaluation failed" in judge_output.optional_suggestions[0]

    async def test_unparseable_judge_defaults_to_pass(self, loop, fake_invoker):
        fake_invoker.script("judge", "I think it's fine")
        result = await loop.judge("assessor", "CLM-1", CLAIM, {})
        assert result.report.final_verdict == "pass"
        assert result.report.final_scores == JudgeScores.uniform(3)

    async def test_invalid_judge_shape_defaults_to_pass(self, loop, fake_invoker):
        fake_invoker.script("judge", {"verdict": "maybe"})
        result = await loop.judge("assessor", "CLM-1", CLAIM, {})
        assert result.report.rounds[0].judge_output.confidence == 0.2

    async def test_judge_timeout_defaults_to_pass(self, loop, fake_invoker):
        fake_invoker.script("judge", TimeoutError("read timed out"))
        result = await loop.judge("assessor", "CLM-1", CLAIM, {})
        assert result.accepted
        assert result.report.total_rounds == 1
        judge_output = result.report.rounds[0].judge_output
        assert judge_output.confidence == 0.2
        assert "read timed out" in judge_output.optional_suggestions[0]

    async def test_meta_failure_leaves_round_unaudited(self, loop, fake_invoker):
        fake_invoker.script("metajudge", UpstreamError(500, "boom"))
        result = await loop.judge("assessor", "CLM-1", CLAIM, {})
        assert result.accepted
        assert result.report.rounds[0].meta_judge_output is None

    async def test_meta_crash_leaves_round_unaudited(self, loop, fake_invoker):
        fake_invoker.script("metajudge", ConnectionResetError("peer reset"))
        result = await loop.judge("assessor", "CLM-1", CLAIM, {})
        assert result.accepted
        assert result.report.rounds[0].meta_judge_output is None

    async def test_emits_round_events(self, loop, fake_invoker, memory_store):
        fake_invoker.script("judge", _judge("revise"))
        ctx = RunContext(memory_store, "run-1", start_seq=4)
        await loop.judge("assessor", "CLM-1", CLAIM, {}, run_context=ctx)

        events = await memory_store.get_run_events("run-1")
        assert [e.seq for e in events] == [5, 6]
        assert {e.event_type for e in events} == {"judge.round"}
        assert [e.payload["verdict"] for e in events] == ["revise", "pass"]
        assert events[0].payload["round"] == 1
        assert events[0].payload["agent_id"] == "assessor"
        assert events[0].payload["meta"]["meta_verdict"] == "affirm"

    async def test_summary_for_ledger(self, loop, fake_invoker):
        fake_invoker.script("judge", _judge("revise"))
        result = await loop.judge("assessor", "CLM-1", CLAIM, {})
        summary = result.report.summary()
        assert summary["round_verdicts"] == ["revise", "pass"]
        assert summary["total_rounds"] == 2
        assert summary["final_scores"]["consistency"] == 5
