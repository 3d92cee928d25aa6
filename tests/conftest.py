"""Shared test fixtures for claimflow."""

from __future__ import annotations

import copy
import json
from datetime import date
from pathlib import Path
from typing import Any

import pytest

from claimflow.bridge.agent_client import AgentOptions, AgentResponse, UpstreamError
from claimflow.bridge.pii_cipher import PiiCipher, generate_master_key
from claimflow.core.audit_ledger import AuditLedger
from claimflow.core.intake import IntakeService
from claimflow.core.judge_loop import JudgeLoop
from claimflow.core.orchestrator import PipelineOrchestrator
from claimflow.models.claim import Claimant, ClaimSubmission, LossDetails, VehicleInfo
from claimflow.storage.memory import InMemoryStore
from claimflow.storage.sqlite import SqliteStore


# ---------------------------------------------------------------------------
# Canned agent outputs (all valid against their stage schema)
# ---------------------------------------------------------------------------

_AGENT_OUTPUTS: dict[str, dict[str, Any]] = {
    "frontdesk": {
        "triage_category": "standard",
        "missing_items": [],
        "compliance": {
            "ack_due_at": "2026-03-08T10:00:00Z",
            "deadlines_met": True,
            "next_required_action": "Acknowledge receipt to claimant",
        },
        "confidence": 0.9,
    },
    "claimsofficer": {
        "coverage_status": "covered",
        "deductible": 500,
        "limits": 25000,
        "proof_of_loss_needed": False,
        "compliance": {
            "accept_deny_deadline": "2026-03-18T10:00:00Z",
            "deadlines_met": True,
            "next_required_action": "Schedule damage assessment",
        },
        "confidence": 0.85,
    },
    "assessor": {
        "repair_estimate_low": 2400,
        "repair_estimate_high": 3100,
        "total_loss_recommended": False,
        "tax_reimbursement_eligible": False,
        "compliance": {
            "estimate_provided": True,
            "deadlines_met": True,
            "next_required_action": "Fraud screening",
        },
        "confidence": 0.8,
    },
    "fraudanalyst": {
        "risk_score": 12,
        "flags": [],
        "recommendation": "normal",
        "compliance": {
            "deadlines_met": True,
            "next_required_action": "Route to human review",
        },
        "confidence": 0.9,
    },
    "finance": {
        "payment_status": "disbursed",
        "amount": 2750,
        "payee": "Jane Doe",
        "compliance": {
            "deadlines_met": True,
            "next_required_action": "Close claim",
        },
        "confidence": 0.95,
    },
    "assessor_vision": {
        "detected_damage": [
            {"part": "front bumper", "severity": "moderate", "side": "front"}
        ],
        "parts_needed": [{"name": "bumper cover", "qty": 1}],
        "labor_operations": [{"operation": "replace bumper cover", "estimated_hours": 2.5}],
        "confidence": 0.7,
    },
    "judge": {
        "verdict": "pass",
        "scores": {
            "groundedness": 4,
            "correctness": 4,
            "completeness": 4,
            "consistency": 5,
            "safety": 5,
            "quality": 4,
        },
        "bullshit_flags": [],
        "required_fixes": [],
        "optional_suggestions": [],
        "evidence": [],
        "confidence": 0.8,
    },
    "metajudge": {
        "meta_verdict": "affirm",
        "judge_quality_score": 4,
        "issues": [],
        "confidence": 0.8,
    },
}


class FakeInvoker:
    """Scripted AgentInvoker.

    Each agent answers from its queue of scripted replies first, then from
    its default.  A reply may be a dict (sent as JSON), raw text, or an
    exception to raise.
    """

    def __init__(self, defaults: dict[str, Any] | None = None) -> None:
        self.defaults: dict[str, Any] = copy.deepcopy(
            _AGENT_OUTPUTS if defaults is None else defaults
        )
        self._queues: dict[str, list[Any]] = {}
        self.calls: list[dict[str, Any]] = []

    def script(self, agent_id: str, *replies: Any) -> None:
        self._queues.setdefault(agent_id, []).extend(replies)

    def calls_for(self, agent_id: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["agent_id"] == agent_id]

    async def invoke(
        self,
        agent_id: str,
        system_prompt: str,
        user_message: str,
        options: AgentOptions | None = None,
    ) -> AgentResponse:
        self.calls.append({
            "agent_id": agent_id,
            "system_prompt": system_prompt,
            "user_message": user_message,
            "options": options,
        })
        queue = self._queues.get(agent_id)
        if queue:
            reply = queue.pop(0)
        elif agent_id in self.defaults:
            reply = self.defaults[agent_id]
        else:
            raise UpstreamError(404, f"no scripted reply for {agent_id}")

        if isinstance(reply, Exception):
            raise reply
        text = reply if isinstance(reply, str) else json.dumps(reply)
        return AgentResponse(text=text, model="fake/model", usage={"total_tokens": 42})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def agent_outputs() -> dict[str, dict[str, Any]]:
    """Deep copy of the canned, schema-valid agent outputs."""
    return copy.deepcopy(_AGENT_OUTPUTS)


@pytest.fixture
def fake_invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def master_key() -> str:
    return generate_master_key()


@pytest.fixture
def cipher(master_key: str) -> PiiCipher:
    return PiiCipher(master_key)


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sqlite_store(tmp_path: Path) -> SqliteStore:
    """Provide a fresh SqliteStore backed by a temp database."""
    return SqliteStore(tmp_path / "claims.db")


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    """Each backend in turn."""
    if request.param == "memory":
        return InMemoryStore()
    return SqliteStore(tmp_path / "claims.db")


@pytest.fixture
def ledger(memory_store: InMemoryStore) -> AuditLedger:
    return AuditLedger(memory_store)


@pytest.fixture
def intake(memory_store: InMemoryStore, cipher: PiiCipher) -> IntakeService:
    return IntakeService(memory_store, cipher)


@pytest.fixture
def orchestrator(
    memory_store: InMemoryStore,
    cipher: PiiCipher,
    fake_invoker: FakeInvoker,
    tmp_path: Path,
) -> PipelineOrchestrator:
    agents_dir = tmp_path / "agents"
    return PipelineOrchestrator(
        memory_store,
        cipher,
        fake_invoker,
        judge_loop=JudgeLoop(fake_invoker, agents_dir=agents_dir),
        agents_dir=agents_dir,
    )


@pytest.fixture
def submission() -> ClaimSubmission:
    return ClaimSubmission(
        policy_id="POL-OH-100200",
        claimant=Claimant(
            full_name="Jane Doe",
            phone="614-555-0142",
            email="jane.doe@example.com",
            address="12 High St, Columbus, OH",
        ),
        loss=LossDetails(
            date_of_loss=date(2026, 2, 18),
            city="Columbus",
            description="Rear-ended at a stop light; front and rear bumper damage.",
        ),
        vehicle=VehicleInfo(vin="1HGCM82633A004352", year=2021, make="Honda", model="Accord"),
    )
