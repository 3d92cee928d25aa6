"""Process wiring: builds every collaborator once from ``Settings``.

The storage backend is chosen here and nowhere else; the cipher key is
installed here exactly once.  Everything downstream receives its
collaborators by injection.
"""

from __future__ import annotations

import logging

from claimflow.bridge.agent_client import AgentInvoker, OpenRouterInvoker
from claimflow.bridge.pii_cipher import PiiCipher
from claimflow.config import Settings
from claimflow.core.audit_ledger import AuditLedger
from claimflow.core.intake import IntakeService
from claimflow.core.judge_loop import JudgeLoop
from claimflow.core.orchestrator import PipelineOrchestrator
from claimflow.core.production_guard import enforce_production_constraints
from claimflow.models.stages import AgentKind
from claimflow.storage.base import DocumentStore
from claimflow.storage.memory import InMemoryStore
from claimflow.storage.sqlite import SqliteStore

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> DocumentStore:
    if settings.storage_backend == "memory":
        logger.info("Using in-memory claim store")
        return InMemoryStore()
    logger.info("Using SQLite claim store at %s", settings.sqlite_path)
    return SqliteStore(settings.sqlite_path)


def create_cipher(settings: Settings) -> PiiCipher:
    """Key holder, initialised when a master key is configured.

    Without a key the cipher stays uninitialised and any PII operation
    raises ``CipherNotInitializedError``.
    """
    if settings.master_key_b64:
        return PiiCipher(settings.master_key_b64)
    logger.warning("No PII master key configured; PII operations will fail.")
    return PiiCipher()


def create_invoker(settings: Settings) -> OpenRouterInvoker:
    return OpenRouterInvoker(
        settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        default_model=settings.default_model,
        model_overrides={
            AgentKind.JUDGE.value: settings.judge_model,
            AgentKind.META_JUDGE.value: settings.judge_model,
            AgentKind.ASSESSOR_VISION.value: settings.vision_model,
        },
        max_tokens=settings.agent_max_tokens,
        temperature=settings.agent_temperature,
        timeout=settings.agent_timeout_seconds,
    )


class Runtime:
    """The assembled application: store, cipher, intake and orchestrator.

    Parameters
    ----------
    settings:
        Active configuration; the production guard runs against it first.
    store, invoker:
        Optional overrides, used by tests and embedding callers.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        store: DocumentStore | None = None,
        invoker: AgentInvoker | None = None,
    ) -> None:
        enforce_production_constraints(settings)

        self.settings = settings
        self.store = store or create_store(settings)
        self.cipher = create_cipher(settings)
        self._owned_invoker = invoker is None
        self.invoker = invoker or create_invoker(settings)

        self.ledger = AuditLedger(self.store)
        self.intake = IntakeService(self.store, self.cipher, ledger=self.ledger)
        self.orchestrator = PipelineOrchestrator(
            self.store,
            self.cipher,
            self.invoker,
            judge_loop=JudgeLoop(
                self.invoker,
                agents_dir=settings.agents_dir,
                judge_model=settings.judge_model,
                max_revision_rounds=settings.max_revision_rounds,
            ),
            agents_dir=settings.agents_dir,
            vision_model=settings.vision_model,
            salvage_pct=settings.salvage_pct,
        )

    async def aclose(self) -> None:
        if self._owned_invoker and isinstance(self.invoker, OpenRouterInvoker):
            await self.invoker.aclose()
