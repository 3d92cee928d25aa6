"""Claim stage state machine.

Enforces:
- Valid transitions only (ALLOWED_TRANSITIONS table)
- No movement out of terminal stages
- Optional compare-and-set on the expected current stage
"""

from __future__ import annotations

import logging

from claimflow.models.claim import Claim
from claimflow.models.stages import ALLOWED_TRANSITIONS, TERMINAL_STAGES, ClaimStage
from claimflow.storage.base import ClaimNotFoundError, DocumentStore

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested stage transition is not valid."""


class StageConflictError(RuntimeError):
    """Raised when a claim is not at the stage an operation requires."""


class StageMachine:
    """Moves a stored claim along the stage graph.

    Parameters
    ----------
    store:
        The document store holding the claim.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def load(self, claim_id: str) -> Claim:
        claim = await self._store.get_claim(claim_id)
        if claim is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found.")
        return claim

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    async def advance(
        self,
        claim_id: str,
        target: ClaimStage,
        *,
        expected: ClaimStage | None = None,
    ) -> Claim:
        """Move the claim to *target*.

        Validates:
        1. If *expected* is given, the claim is currently there.
        2. The transition is allowed by ALLOWED_TRANSITIONS.

        Returns the updated claim.
        """
        claim = await self.load(claim_id)
        current = claim.stage

        if expected is not None and current != expected:
            raise StageConflictError(
                f"Claim {claim_id} is at {current.value}, expected {expected.value}."
            )

        allowed = ALLOWED_TRANSITIONS.get(current, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {claim_id} from {current.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

        updated = await self._store.update_claim_stage(claim_id, target)
        logger.info("Claim %s: %s -> %s", claim_id, current.value, target.value)
        return updated

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    @staticmethod
    def is_terminal(stage: ClaimStage) -> bool:
        return stage in TERMINAL_STAGES

    async def get_available_transitions(self, claim_id: str) -> set[ClaimStage]:
        """Return the set of valid target stages for a claim."""
        claim = await self.load(claim_id)
        return set(ALLOWED_TRANSITIONS.get(claim.stage, set()))
