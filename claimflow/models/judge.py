"""Judge and meta-judge verdict models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

JudgeVerdict = Literal["pass", "revise", "fail"]


class JudgeScores(BaseModel):
    """Six-dimension quality score vector, each 0..5."""

    model_config = ConfigDict(frozen=True)

    groundedness: int = Field(ge=0, le=5)
    correctness: int = Field(ge=0, le=5)
    completeness: int = Field(ge=0, le=5)
    consistency: int = Field(ge=0, le=5)
    safety: int = Field(ge=0, le=5)
    quality: int = Field(ge=0, le=5)

    @classmethod
    def uniform(cls, value: int) -> JudgeScores:
        return cls(
            groundedness=value,
            correctness=value,
            completeness=value,
            consistency=value,
            safety=value,
            quality=value,
        )


class EvidenceItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    issue: str
    expected: str | None = None


class JudgeOutput(BaseModel):
    model_config = ConfigDict(frozen=True)

    verdict: JudgeVerdict
    scores: JudgeScores
    bullshit_flags: list[str] = []
    required_fixes: list[str] = []
    optional_suggestions: list[str] = []
    evidence: list[EvidenceItem] = []
    confidence: float = Field(default=0.5, ge=0, le=1)


class MetaJudgeOutput(BaseModel):
    model_config = ConfigDict(frozen=True)

    meta_verdict: Literal["affirm", "override"]
    override_verdict: JudgeVerdict | None = None
    judge_quality_score: int = Field(default=3, ge=0, le=5)
    issues: list[str] = []
    confidence: float = Field(default=0.5, ge=0, le=1)


class JudgeRound(BaseModel):
    model_config = ConfigDict(frozen=True)

    round: int
    producer_output: dict[str, Any]
    judge_output: JudgeOutput
    meta_judge_output: MetaJudgeOutput | None = None
    effective_verdict: JudgeVerdict


class JudgeReport(BaseModel):
    """Ordered judge rounds for one producer output; read by reviewers."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    rounds: list[JudgeRound] = []
    final_verdict: JudgeVerdict = "fail"
    final_scores: JudgeScores = JudgeScores.uniform(0)
    total_rounds: int = 0

    def summary(self) -> dict[str, Any]:
        """Compact form recorded in the audit ledger."""
        return {
            "agent_id": self.agent_id,
            "final_verdict": self.final_verdict,
            "final_scores": self.final_scores.model_dump(),
            "total_rounds": self.total_rounds,
            "round_verdicts": [r.effective_verdict for r in self.rounds],
        }
