"""Agent run records and their fine-grained progress events."""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from claimflow.models.judge import JudgeReport


class RunStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


TERMINAL_RUN_STATUSES: frozenset[RunStatus] = frozenset(
    {RunStatus.SUCCEEDED, RunStatus.FAILED}
)


class RunEventType(str, Enum):
    STAGE_STARTED = "stage.started"
    VISION_COMPLETED = "vision.completed"
    VISION_DEGRADED = "vision.degraded"
    AGENT_RESPONDED = "agent.responded"
    JUDGE_ROUND = "judge.round"
    STAGE_COMPLETED = "stage.completed"
    STAGE_FAILED = "stage.failed"


class Run(BaseModel):
    """One execution record of a single agent invocation."""

    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    claim_id: str
    stage: str  # target stage
    agent_id: str
    status: RunStatus = RunStatus.RUNNING
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ended_at: datetime | None = None
    actor_id: str = "system"
    trace_id: str = Field(default_factory=lambda: secrets.token_hex(16))
    input_prompt: str = ""
    output_json: dict[str, Any] | None = None
    output_text: str | None = None
    model: str | None = None
    usage: dict[str, Any] | None = None
    reasoning: str | None = None
    error: str | None = None
    error_type: str | None = None
    judge_report: JudgeReport | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES


class RunEvent(BaseModel):
    """A progress sub-event of a run, ordered by ``seq``."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    seq: int
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: str
    payload: dict[str, Any] = {}
