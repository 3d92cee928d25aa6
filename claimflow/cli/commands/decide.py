"""``claimflow decide``: record a human reviewer's decision.

Approve runs the finance step; deny closes the claim without payment.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError

from claimflow.cli.context import console, fail, run_with_runtime
from claimflow.core.orchestrator import DecisionResult
from claimflow.models.claim import HumanDecision
from claimflow.runtime import Runtime


def decide_cmd(
    claim_id: str = typer.Argument(..., help="Claim held at PENDING_REVIEW."),
    outcome: str = typer.Option(
        ..., "--decision", "-d", help="'approve' (pay) or 'deny' (close without payment)."
    ),
    rationale: str = typer.Option(..., "--rationale", "-r", help="Reason for the decision."),
    amount_cap: float = typer.Option(
        None, "--cap", help="Maximum approved payment amount."
    ),
    reviewer: str = typer.Option("reviewer", "--by", help="Reviewer identity."),
) -> None:
    """Approve or deny a claim awaiting review."""
    try:
        decision = HumanDecision(
            decision=outcome.strip().lower(),
            rationale=rationale,
            approve_amount_cap=amount_cap,
            decided_by=reviewer,
        )
    except ValidationError as exc:
        fail(f"Invalid decision: {exc.errors()[0]['msg']}")

    async def _decide(runtime: Runtime) -> DecisionResult:
        return await runtime.orchestrator.submit_decision(claim_id, decision)

    result = run_with_runtime(_decide)

    console.print(
        f"[bold]{claim_id}[/bold]: {decision.decision} -> "
        f"[cyan]{result.final_stage.value}[/cyan]"
    )
    if result.finance is not None:
        if result.finance.ok:
            console.print(
                f"Payment due by {result.finance.payment_due_at.isoformat()}"
                if result.finance.payment_due_at
                else "Payment recorded."
            )
        else:
            for error in result.finance.errors:
                console.print(f"[red]Finance failed:[/red] {error}")
            raise typer.Exit(code=1)
