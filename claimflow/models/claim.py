"""Claim models: the mutable workflow subject and its intake payloads.

Claimant contact fields and the VIN hold ciphertext once a claim has been
through intake.  Claims created before encryption was enabled may still
carry plaintext; readers go through ``PiiCipher.reveal`` for that reason.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from claimflow.models.stages import ClaimStage


def new_claim_id() -> str:
    """Return a fresh ``CLM-`` identifier with a 12-character suffix."""
    return f"CLM-{uuid.uuid4().hex[:12].upper()}"


class Claimant(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: str
    phone: str
    email: str | None = None
    address: str | None = None


class LossDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    date_of_loss: date
    state: str = "OH"
    city: str | None = None
    description: str = ""


class VehicleInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    vin: str | None = None
    year: int | None = None
    make: str | None = None
    model: str | None = None

    def label(self) -> str:
        """Human-readable ``year make model`` with unknown parts dropped."""
        parts = [str(self.year) if self.year else "", self.make or "", self.model or ""]
        return " ".join(p for p in parts if p)


class ComplianceDeadlines(BaseModel):
    """Regulatory deadlines attached to a claim (all UTC)."""

    model_config = ConfigDict(frozen=True)

    ack_due_at: datetime
    accept_deny_due_at: datetime | None = None
    next_status_update_due_at: datetime | None = None
    fraud_report_due_at: datetime | None = None
    payment_due_at: datetime | None = None


class Claim(BaseModel):
    """The workflow subject.  Only the orchestrator moves ``stage``."""

    model_config = ConfigDict(frozen=True)

    claim_id: str = Field(default_factory=new_claim_id)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    policy_id: str
    claimant: Claimant
    loss: LossDetails
    vehicle: VehicleInfo = VehicleInfo()
    stage: ClaimStage = ClaimStage.FNOL_SUBMITTED
    compliance: ComplianceDeadlines
    attachments: list[str] = []

    def damage_photos(self) -> list[str]:
        """Attachment keys stored under the damage-photo prefix."""
        return [key for key in self.attachments if "/damage_photos/" in key]


class ClaimSubmission(BaseModel):
    """Plaintext first-notice-of-loss payload accepted by intake."""

    model_config = ConfigDict(frozen=True)

    policy_id: str = "POL-UNKNOWN"
    claimant: Claimant
    loss: LossDetails
    vehicle: VehicleInfo = VehicleInfo()
    attachments: list[str] = []


class HumanDecision(BaseModel):
    """A reviewer's final decision on a claim held at PENDING_REVIEW."""

    model_config = ConfigDict(frozen=True)

    decision: Literal["approve", "deny"]
    rationale: str
    approve_amount_cap: float | None = None
    decided_by: str = "reviewer"
    decided_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("rationale")
    @classmethod
    def _rationale_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("rationale is required")
        return value

    @property
    def final_outcome(self) -> str:
        return "approve" if self.decision == "approve" else "deny"
