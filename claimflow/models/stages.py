"""Claim stage graph and pipeline step table.

The claim's ``stage`` only moves along ``ALLOWED_TRANSITIONS``.  Terminal
stages (PAID, CLOSED_NO_PAY) have no outgoing edges.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ClaimStage(str, Enum):
    """Named points in the claim workflow graph."""

    FNOL_SUBMITTED = "FNOL_SUBMITTED"
    FRONTDESK_DONE = "FRONTDESK_DONE"
    COVERAGE_DONE = "COVERAGE_DONE"
    ASSESSMENT_DONE = "ASSESSMENT_DONE"
    FRAUD_DONE = "FRAUD_DONE"
    PENDING_REVIEW = "PENDING_REVIEW"
    FINAL_DECISION_DONE = "FINAL_DECISION_DONE"
    PAID = "PAID"
    CLOSED_NO_PAY = "CLOSED_NO_PAY"


ALLOWED_TRANSITIONS: dict[ClaimStage, set[ClaimStage]] = {
    ClaimStage.FNOL_SUBMITTED: {ClaimStage.FRONTDESK_DONE},
    ClaimStage.FRONTDESK_DONE: {ClaimStage.COVERAGE_DONE},
    ClaimStage.COVERAGE_DONE: {ClaimStage.ASSESSMENT_DONE},
    ClaimStage.ASSESSMENT_DONE: {ClaimStage.FRAUD_DONE},
    ClaimStage.FRAUD_DONE: {ClaimStage.PENDING_REVIEW},
    ClaimStage.PENDING_REVIEW: {ClaimStage.FINAL_DECISION_DONE},
    ClaimStage.FINAL_DECISION_DONE: {ClaimStage.PAID, ClaimStage.CLOSED_NO_PAY},
    ClaimStage.PAID: set(),  # terminal
    ClaimStage.CLOSED_NO_PAY: set(),  # terminal
}

TERMINAL_STAGES: frozenset[ClaimStage] = frozenset(
    stage for stage, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# The automated loop ends here; the claim is then handed to a human reviewer.
LAST_AUTOMATED_STAGE = ClaimStage.FRAUD_DONE
REVIEW_STAGE = ClaimStage.PENDING_REVIEW


class AgentKind(str, Enum):
    """Closed set of agents the orchestrator may invoke.

    The value is the agent identifier sent to the invocation collaborator
    and the directory name of the agent's system prompt.
    """

    FRONTDESK = "frontdesk"
    CLAIMS_OFFICER = "claimsofficer"
    ASSESSOR = "assessor"
    ASSESSOR_VISION = "assessor_vision"
    FRAUD_ANALYST = "fraudanalyst"
    FINANCE = "finance"
    JUDGE = "judge"
    META_JUDGE = "metajudge"


# Agents whose output advances the claim stage.
PRODUCER_AGENTS: frozenset[AgentKind] = frozenset({
    AgentKind.FRONTDESK,
    AgentKind.CLAIMS_OFFICER,
    AgentKind.ASSESSOR,
    AgentKind.FRAUD_ANALYST,
    AgentKind.FINANCE,
})


class PipelineStep(BaseModel):
    """One edge of the automated pipeline: run ``agent`` at ``from_stage``."""

    model_config = ConfigDict(frozen=True)

    from_stage: ClaimStage
    agent: AgentKind
    to_stage: ClaimStage
    validator_key: str


PIPELINE_STEPS: list[PipelineStep] = [
    PipelineStep(
        from_stage=ClaimStage.FNOL_SUBMITTED,
        agent=AgentKind.FRONTDESK,
        to_stage=ClaimStage.FRONTDESK_DONE,
        validator_key="FRONTDESK_DONE",
    ),
    PipelineStep(
        from_stage=ClaimStage.FRONTDESK_DONE,
        agent=AgentKind.CLAIMS_OFFICER,
        to_stage=ClaimStage.COVERAGE_DONE,
        validator_key="COVERAGE_DONE",
    ),
    PipelineStep(
        from_stage=ClaimStage.COVERAGE_DONE,
        agent=AgentKind.ASSESSOR,
        to_stage=ClaimStage.ASSESSMENT_DONE,
        validator_key="ASSESSMENT_DONE",
    ),
    PipelineStep(
        from_stage=ClaimStage.ASSESSMENT_DONE,
        agent=AgentKind.FRAUD_ANALYST,
        to_stage=ClaimStage.FRAUD_DONE,
        validator_key="FRAUD_DONE",
    ),
]

# Only reachable through a human decision, never by stage precondition.
FINANCE_STEP = PipelineStep(
    from_stage=ClaimStage.FINAL_DECISION_DONE,
    agent=AgentKind.FINANCE,
    to_stage=ClaimStage.PAID,
    validator_key="PAID",
)
