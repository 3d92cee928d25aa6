"""``claimflow queue``: claims awaiting a human decision."""

from __future__ import annotations

from rich.table import Table

from claimflow.cli.context import console, run_with_runtime
from claimflow.core.compliance_clock import is_deadline_met
from claimflow.models.claim import Claim
from claimflow.models.stages import REVIEW_STAGE
from claimflow.runtime import Runtime


def queue_cmd() -> None:
    """List claims at PENDING_REVIEW, newest first."""

    async def _pending(runtime: Runtime) -> list[Claim]:
        return await runtime.store.list_claims(REVIEW_STAGE)

    claims = run_with_runtime(_pending)
    if not claims:
        console.print("[dim]No claims awaiting review.[/dim]")
        return

    table = Table(title="Review queue")
    table.add_column("Claim ID", style="cyan")
    table.add_column("Policy")
    table.add_column("Loss date")
    table.add_column("Vehicle")
    table.add_column("Ack deadline", justify="center")
    for claim in claims:
        ack_ok = is_deadline_met(claim.compliance.ack_due_at)
        table.add_row(
            claim.claim_id,
            claim.policy_id,
            claim.loss.date_of_loss.isoformat(),
            claim.vehicle.label() or "-",
            "[green]open[/green]" if ack_ok else "[red]passed[/red]",
        )
    console.print(table)
