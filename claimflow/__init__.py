"""claimflow: agent-driven insurance claim pipeline with a verifiable audit ledger.

v0.1.0:
  - Stage state machine over a fixed FNOL -> PAID / CLOSED_NO_PAY graph
  - Judge / meta-judge quality loop with bounded rounds
  - Per-claim SHA-256 hash-chained audit ledger
  - Field-level PII encryption via PyNaCl SecretBox
  - Ohio regulatory deadline clock
  - In-memory and SQLite storage backends
"""

__version__ = "0.1.0"
__description__ = (
    "Agent-driven insurance claim pipeline with a verifiable audit ledger"
)

from claimflow.core.orchestrator import PipelineOrchestrator
from claimflow.runtime import Runtime

__all__ = ["PipelineOrchestrator", "Runtime", "__version__"]
