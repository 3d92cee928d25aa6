"""Structured output contracts for each stage agent.

Every model forbids undeclared properties at every nesting level, so an
agent that invents a field fails validation instead of leaking it into the
ledger.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _Closed(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Front desk (FNOL triage)
# ---------------------------------------------------------------------------


class FrontDeskCompliance(_Closed):
    ack_due_at: str
    deadlines_met: bool
    next_required_action: str


class FrontDeskOutput(_Closed):
    triage_category: Literal["fast_track", "standard", "complex"]
    missing_items: list[str]
    compliance: FrontDeskCompliance
    confidence: float = Field(ge=0, le=1)


# ---------------------------------------------------------------------------
# Claims officer (coverage)
# ---------------------------------------------------------------------------


class CoverageCompliance(_Closed):
    accept_deny_deadline: str
    deadlines_met: bool
    next_required_action: str


class ClaimsOfficerOutput(_Closed):
    coverage_status: Literal["covered", "denied", "need_more_info"]
    deductible: float | None = None
    limits: float | None = None
    denial_reason: str | None = None
    denial_provision_ref: str | None = None
    proof_of_loss_needed: bool
    compliance: CoverageCompliance
    confidence: float = Field(ge=0, le=1)


# ---------------------------------------------------------------------------
# Assessor (damage)
# ---------------------------------------------------------------------------


class AssessmentCompliance(_Closed):
    estimate_provided: bool
    deadlines_met: bool
    next_required_action: str


class AssessorOutput(_Closed):
    repair_estimate_low: float = Field(ge=0)
    repair_estimate_high: float = Field(ge=0)
    total_loss_recommended: bool
    valuation_method: Literal[
        "local_comps",
        "proximate_market_comps",
        "dealer_quotes",
        "industry_source_database",
    ] | None = None
    actual_cash_value: float | None = None
    betterment_deductions: list[str] | None = None
    parts_compliance_note: str | None = None
    tax_reimbursement_eligible: bool
    compliance: AssessmentCompliance
    confidence: float = Field(ge=0, le=1)


# ---------------------------------------------------------------------------
# Fraud analyst
# ---------------------------------------------------------------------------


class FraudCompliance(_Closed):
    fraud_report_due_at: str | None = None
    deadlines_met: bool
    next_required_action: str


class FraudAnalystOutput(_Closed):
    risk_score: float = Field(ge=0, le=100)
    flags: list[str]
    recommendation: Literal["normal", "enhanced_review", "siu_referral"]
    fraud_reporting_deadline: str | None = None
    compliance: FraudCompliance
    confidence: float = Field(ge=0, le=1)


# ---------------------------------------------------------------------------
# Final decision
# ---------------------------------------------------------------------------


class FinalDecisionCompliance(_Closed):
    all_stages_complete: bool
    deadlines_met: bool
    next_required_action: str


class FinalDecisionOutput(_Closed):
    final_outcome: Literal["approve", "partial", "deny", "escalate"]
    rationale: str
    approve_amount_cap: float | None = None
    required_actions: list[str]
    needs_human_review: bool
    compliance: FinalDecisionCompliance
    confidence: float = Field(ge=0, le=1)


# ---------------------------------------------------------------------------
# Finance (payment)
# ---------------------------------------------------------------------------


class PaymentCompliance(_Closed):
    payment_due_at: str | None = None
    deadlines_met: bool
    next_required_action: str


class FinanceOutput(_Closed):
    payment_status: Literal["disbursed", "held", "rejected"]
    amount: float | None = None
    payee: str | None = None
    ledger_entry_id: str | None = None
    receipt_ref: str | None = None
    compliance: PaymentCompliance
    confidence: float = Field(ge=0, le=1)


# ---------------------------------------------------------------------------
# Vision pre-assessment (auxiliary, not a stage output)
# ---------------------------------------------------------------------------


class DetectedDamage(BaseModel):
    model_config = ConfigDict(frozen=True)

    part: str
    severity: Literal["minor", "moderate", "severe"]
    side: str | None = None
    description: str = ""


class PartNeeded(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    qty: int = 1
    condition_recommendation: str | None = None


class LaborOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: str
    estimated_hours: float = 0.0


class VisionAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    detected_damage: list[DetectedDamage] = []
    parts_needed: list[PartNeeded] = []
    labor_operations: list[LaborOperation] = []
    total_loss_indicators: str | None = None
    confidence: float = Field(default=0.5, ge=0, le=1)


STAGE_OUTPUT_MODELS: dict[str, type[BaseModel]] = {
    "FRONTDESK_DONE": FrontDeskOutput,
    "COVERAGE_DONE": ClaimsOfficerOutput,
    "ASSESSMENT_DONE": AssessorOutput,
    "FRAUD_DONE": FraudAnalystOutput,
    "FINAL_DECISION_DONE": FinalDecisionOutput,
    "PAID": FinanceOutput,
}
