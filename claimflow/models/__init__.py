"""claimflow data models: all Pydantic v2, all frozen (immutable)."""

from claimflow.models.claim import (
    Claim,
    Claimant,
    ClaimSubmission,
    ComplianceDeadlines,
    HumanDecision,
    LossDetails,
    VehicleInfo,
)
from claimflow.models.judge import (
    JudgeOutput,
    JudgeReport,
    JudgeRound,
    JudgeScores,
    MetaJudgeOutput,
)
from claimflow.models.ledger import AuditContext, ClaimEvent, EventType
from claimflow.models.outputs import STAGE_OUTPUT_MODELS, VisionAssessment
from claimflow.models.runs import Run, RunEvent, RunEventType, RunStatus
from claimflow.models.stages import (
    ALLOWED_TRANSITIONS,
    FINANCE_STEP,
    PIPELINE_STEPS,
    AgentKind,
    ClaimStage,
    PipelineStep,
)

__all__ = [
    # stages
    "ClaimStage",
    "AgentKind",
    "PipelineStep",
    "ALLOWED_TRANSITIONS",
    "PIPELINE_STEPS",
    "FINANCE_STEP",
    # claim
    "Claim",
    "Claimant",
    "ClaimSubmission",
    "ComplianceDeadlines",
    "HumanDecision",
    "LossDetails",
    "VehicleInfo",
    # ledger
    "AuditContext",
    "ClaimEvent",
    "EventType",
    # runs
    "Run",
    "RunEvent",
    "RunEventType",
    "RunStatus",
    # judge
    "JudgeOutput",
    "JudgeReport",
    "JudgeRound",
    "JudgeScores",
    "MetaJudgeOutput",
    # outputs
    "STAGE_OUTPUT_MODELS",
    "VisionAssessment",
]
