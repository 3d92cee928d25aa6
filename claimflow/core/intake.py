"""Claim intake: first notice of loss to a stored, encrypted claim."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from claimflow.bridge.pii_cipher import PiiCipher
from claimflow.core.audit_ledger import AuditLedger
from claimflow.core.compliance_clock import compute_deadlines
from claimflow.models.claim import Claim, Claimant, ClaimSubmission, VehicleInfo
from claimflow.models.ledger import AuditContext, EventType
from claimflow.models.stages import ClaimStage
from claimflow.storage.base import DocumentStore

logger = logging.getLogger(__name__)


class IntakeService:
    """Creates claims at FNOL_SUBMITTED and opens their audit chain.

    Claimant contact fields and the VIN are encrypted before the claim is
    stored; nothing downstream ever sees them in plaintext at rest.
    """

    def __init__(
        self,
        store: DocumentStore,
        cipher: PiiCipher,
        ledger: AuditLedger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._cipher = cipher
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._ledger = ledger or AuditLedger(store, clock=self._clock)

    def _encrypt_claimant(self, claimant: Claimant) -> Claimant:
        return Claimant(
            full_name=self._cipher.encrypt(claimant.full_name),
            phone=self._cipher.encrypt(claimant.phone),
            email=self._cipher.encrypt_optional(claimant.email),
            address=self._cipher.encrypt_optional(claimant.address),
        )

    def _encrypt_vehicle(self, vehicle: VehicleInfo) -> VehicleInfo:
        return vehicle.model_copy(update={"vin": self._cipher.encrypt_optional(vehicle.vin)})

    async def submit(self, submission: ClaimSubmission, *, actor_id: str = "intake") -> Claim:
        now = self._clock()
        claim = Claim(
            created_at=now,
            updated_at=now,
            policy_id=submission.policy_id,
            claimant=self._encrypt_claimant(submission.claimant),
            loss=submission.loss,
            vehicle=self._encrypt_vehicle(submission.vehicle),
            stage=ClaimStage.FNOL_SUBMITTED,
            compliance=compute_deadlines(now),
            attachments=list(submission.attachments),
        )
        await self._store.put_claim(claim)
        await self._ledger.append(
            claim.claim_id,
            ClaimStage.FNOL_SUBMITTED,
            EventType.CLAIM_CREATED,
            {
                "policy_id": claim.policy_id,
                "loss_date": claim.loss.date_of_loss.isoformat(),
            },
            AuditContext(actor_id=actor_id),
        )
        logger.info("Claim %s submitted for policy %s", claim.claim_id, claim.policy_id)
        return claim
