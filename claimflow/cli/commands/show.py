"""``claimflow show``: a claim, its audit ledger and its agent runs.

PII is decrypted for display best-effort: values that do not decrypt
(claims stored before encryption) are shown as stored.
"""

from __future__ import annotations

from typing import Any

import typer
from rich.panel import Panel
from rich.table import Table

from claimflow.cli.context import console, run_with_runtime
from claimflow.core.prompts import decrypted_claim_view
from claimflow.models.claim import Claim
from claimflow.models.ledger import ClaimEvent
from claimflow.models.runs import Run
from claimflow.runtime import Runtime
from claimflow.storage.base import ClaimNotFoundError


def _fmt(value: Any) -> str:
    return "-" if value is None else str(value)


def show_cmd(
    claim_id: str = typer.Argument(..., help="Claim to display."),
    reveal: bool = typer.Option(
        True, "--reveal/--no-reveal", help="Decrypt claimant PII for display."
    ),
) -> None:
    """Show a claim with its ledger and runs."""

    async def _load(runtime: Runtime) -> tuple[Claim, dict[str, Any], list[ClaimEvent], list[Run]]:
        claim = await runtime.store.get_claim(claim_id)
        if claim is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found.")
        view = (
            decrypted_claim_view(claim, runtime.cipher)
            if reveal
            else claim.model_dump(mode="json")
        )
        events = await runtime.ledger.get_events(claim_id)
        runs = await runtime.store.get_runs_for_claim(claim_id)
        return claim, view, events, runs

    claim, view, events, runs = run_with_runtime(_load)
    claimant = view["claimant"]
    compliance = view["compliance"]

    console.print(
        Panel(
            "\n".join([
                f"[bold]Stage:[/bold]         {claim.stage.value}",
                f"[bold]Policy:[/bold]        {claim.policy_id}",
                f"[bold]Claimant:[/bold]      {claimant['full_name']}",
                f"[bold]Phone:[/bold]         {claimant['phone']}",
                f"[bold]Email:[/bold]         {_fmt(claimant.get('email'))}",
                f"[bold]Date of loss:[/bold]  {view['loss']['date_of_loss']}",
                f"[bold]Vehicle:[/bold]       {claim.vehicle.label() or '-'}",
                f"[bold]VIN:[/bold]           {_fmt(view['vehicle'].get('vin'))}",
                "",
                f"[bold]Ack due:[/bold]       {compliance['ack_due_at']}",
                f"[bold]Payment due:[/bold]   {_fmt(compliance.get('payment_due_at'))}",
            ]),
            title=f"[bold]{claim.claim_id}[/bold]",
            border_style="cyan",
            padding=(1, 2),
        )
    )

    ledger_table = Table(title=f"Audit ledger ({len(events)} events)")
    ledger_table.add_column("#", justify="right", style="dim")
    ledger_table.add_column("Created", style="dim")
    ledger_table.add_column("Stage", style="cyan")
    ledger_table.add_column("Type")
    ledger_table.add_column("Actor")
    ledger_table.add_column("Hash", style="dim")
    for idx, event in enumerate(events, start=1):
        ledger_table.add_row(
            str(idx),
            event.created_at,
            event.stage,
            event.type,
            _fmt(event.actor_id),
            event.hash[:12],
        )
    console.print(ledger_table)

    if runs:
        runs_table = Table(title="Agent runs")
        runs_table.add_column("Run ID", style="dim")
        runs_table.add_column("Agent", style="cyan")
        runs_table.add_column("Stage")
        runs_table.add_column("Status", justify="center")
        runs_table.add_column("Judge")
        for run in runs:
            status_style = {"SUCCEEDED": "green", "FAILED": "red"}.get(run.status.value, "yellow")
            judge = run.judge_report.final_verdict if run.judge_report else "-"
            runs_table.add_row(
                run.run_id,
                run.agent_id,
                run.stage,
                f"[{status_style}]{run.status.value}[/{status_style}]",
                judge,
            )
        console.print(runs_table)
