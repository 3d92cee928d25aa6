"""``claimflow submit``: first notice of loss from a JSON file.

Encrypts the claimant's PII, stores the claim at FNOL_SUBMITTED, opens its
audit chain and prints the claim id.  ``--run`` continues straight into a
pipeline pass.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.panel import Panel

from claimflow.cli.commands.run import print_pipeline_result
from claimflow.cli.context import console, fail, run_with_runtime
from claimflow.core.orchestrator import PipelineResult
from claimflow.models.claim import Claim, ClaimSubmission
from claimflow.runtime import Runtime


def submit_cmd(
    payload: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="JSON file with policy_id, claimant, loss, vehicle and attachments.",
    ),
    run: bool = typer.Option(
        False, "--run", help="Run the automated pipeline immediately after intake."
    ),
) -> None:
    """Submit a new claim."""
    try:
        submission = ClaimSubmission.model_validate_json(payload.read_text(encoding="utf-8"))
    except ValidationError as exc:
        fail(f"Invalid claim submission in {payload}:\n{exc}")

    async def _submit(runtime: Runtime) -> tuple[Claim, PipelineResult | None]:
        claim = await runtime.intake.submit(submission)
        result = await runtime.orchestrator.run_pipeline(claim.claim_id) if run else None
        return claim, result

    claim, result = run_with_runtime(_submit)

    console.print()
    console.print(
        Panel(
            "\n".join([
                "[bold green]Claim submitted.[/bold green]",
                "",
                f"[bold]Claim ID:[/bold]      {claim.claim_id}",
                f"[bold]Policy:[/bold]        {claim.policy_id}",
                f"[bold]Date of loss:[/bold]  {claim.loss.date_of_loss.isoformat()}",
                f"[bold]Vehicle:[/bold]       {claim.vehicle.label() or '-'}",
                f"[bold]Ack due:[/bold]       {claim.compliance.ack_due_at.isoformat()}",
            ]),
            title="[bold]claimflow[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )

    if result is not None:
        print_pipeline_result(result)
        if result.errors:
            raise typer.Exit(code=1)

    # Print the claim id plainly for scripting
    typer.echo(claim.claim_id)
