"""Per-agent user prompts built from a decrypted view of the claim.

``PROMPT_HANDLERS`` maps every producer agent to its prompt builder.  The
table is checked against ``PRODUCER_AGENTS`` at import, so adding an agent
without a prompt fails loudly instead of at the first pipeline pass.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict

from claimflow.bridge.pii_cipher import PassedThrough, PiiCipher
from claimflow.models.claim import Claim
from claimflow.models.stages import PRODUCER_AGENTS, AgentKind

logger = logging.getLogger(__name__)

_CLAIMANT_PII = ("full_name", "phone", "email", "address")


class PromptInputs(BaseModel):
    """Everything a prompt handler may draw on besides the claim itself."""

    model_config = ConfigDict(frozen=True)

    claim: dict[str, Any]
    prior_outputs: dict[str, Any] = {}
    vision: dict[str, Any] | None = None
    decision: dict[str, Any] | None = None


def decrypted_claim_view(claim: Claim, cipher: PiiCipher) -> dict[str, Any]:
    """JSON view of *claim* with PII fields decrypted best-effort.

    Fields that do not decrypt pass through unchanged.
    """
    view = claim.model_dump(mode="json")
    degraded: list[str] = []

    for field in _CLAIMANT_PII:
        value = view["claimant"].get(field)
        if value is None:
            continue
        outcome = cipher.reveal(value)
        if isinstance(outcome, PassedThrough):
            degraded.append(f"claimant.{field}")
        view["claimant"][field] = outcome.value

    vin = view["vehicle"].get("vin")
    if vin is not None:
        outcome = cipher.reveal(vin)
        if isinstance(outcome, PassedThrough):
            degraded.append("vehicle.vin")
        view["vehicle"]["vin"] = outcome.value

    if degraded:
        logger.info(
            "Claim %s: %d PII field(s) not decryptable, passed through: %s",
            claim.claim_id, len(degraded), ", ".join(degraded),
        )
    return view


def _section(title: str, obj: Any) -> str:
    return f"## {title}\n{json.dumps(obj, indent=2, default=str)}"


def _prior(inputs: PromptInputs) -> list[str]:
    if not inputs.prior_outputs:
        return []
    return [_section("Prior Stage Outputs", inputs.prior_outputs)]


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def frontdesk_prompt(inputs: PromptInputs) -> str:
    return "\n\n".join([
        "Triage this first notice of loss. Identify missing items and the "
        "acknowledgment deadline, then produce your structured JSON output.",
        _section("Claim data", inputs.claim),
    ])


def claims_officer_prompt(inputs: PromptInputs) -> str:
    return "\n\n".join([
        "Determine coverage for this claim under the policy and produce your "
        "structured JSON output.",
        _section("Claim data", inputs.claim),
        *_prior(inputs),
    ])


def assessor_prompt(inputs: PromptInputs) -> str:
    return "\n\n".join([
        "Assess the vehicle damage for this claim and produce your structured "
        "JSON output. Use the photo pre-assessment where available.",
        _section("Claim data", inputs.claim),
        _section("Vision Pre-Assessment", inputs.vision or {}),
        *_prior(inputs),
    ])


def fraud_analyst_prompt(inputs: PromptInputs) -> str:
    return "\n\n".join([
        "Score the fraud risk of this claim and produce your structured JSON output.",
        _section("Claim data", inputs.claim),
        *_prior(inputs),
    ])


def finance_prompt(inputs: PromptInputs) -> str:
    return "\n\n".join([
        "Execute payment for this approved claim and produce your structured JSON output.",
        _section("Claim data", inputs.claim),
        _section("Reviewer Decision", inputs.decision or {}),
        *_prior(inputs),
    ])


PromptHandler = Callable[[PromptInputs], str]

PROMPT_HANDLERS: dict[AgentKind, PromptHandler] = {
    AgentKind.FRONTDESK: frontdesk_prompt,
    AgentKind.CLAIMS_OFFICER: claims_officer_prompt,
    AgentKind.ASSESSOR: assessor_prompt,
    AgentKind.FRAUD_ANALYST: fraud_analyst_prompt,
    AgentKind.FINANCE: finance_prompt,
}

_missing = PRODUCER_AGENTS - PROMPT_HANDLERS.keys()
if _missing:
    raise RuntimeError(
        f"Producer agents without a prompt handler: {sorted(a.value for a in _missing)}"
    )


def build_prompt(agent: AgentKind, inputs: PromptInputs) -> str:
    return PROMPT_HANDLERS[agent](inputs)


# ---------------------------------------------------------------------------
# Vision
# ---------------------------------------------------------------------------


def vision_prompt(claim_view: dict[str, Any], photo_count: int) -> str:
    return "\n\n".join([
        f"Inspect the {photo_count} attached damage photo(s) and report detected "
        "damage, parts needed and labor operations as JSON.",
        _section("Loss", claim_view.get("loss", {})),
        _section("Vehicle", claim_view.get("vehicle", {})),
    ])


def vision_unavailable(reason: str) -> dict[str, Any]:
    """Placeholder vision context used when no photo assessment exists."""
    return {
        "status": "unavailable",
        "note": "Assessment based on text only",
        "reason": reason,
    }
