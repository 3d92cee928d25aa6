"""``claimflow run``: one automated pipeline pass for a claim."""

from __future__ import annotations

import typer
from rich.table import Table

from claimflow.cli.context import console, run_with_runtime
from claimflow.core.orchestrator import PipelineResult
from claimflow.runtime import Runtime


def print_pipeline_result(result: PipelineResult) -> None:
    table = Table(title=f"Pipeline pass: {result.claim_id}")
    table.add_column("Stage", style="cyan")
    table.add_column("Run ID", style="dim")
    table.add_column("Outcome", justify="center")

    for stage, run_id in result.run_ids.items():
        outcome = (
            "[green]completed[/green]"
            if stage in result.stages_completed
            else "[red]failed[/red]"
        )
        table.add_row(stage, run_id, outcome)

    console.print(table)
    console.print(f"[bold]Final stage:[/bold] {result.final_stage.value}")
    for error in result.errors:
        console.print(f"[red]Error:[/red] {error}")


def run_cmd(
    claim_id: str = typer.Argument(..., help="Claim to advance."),
) -> None:
    """Run every automated stage the claim is ready for."""

    async def _run(runtime: Runtime) -> PipelineResult:
        return await runtime.orchestrator.run_pipeline(claim_id)

    result = run_with_runtime(_run)
    print_pipeline_result(result)
    if result.errors:
        raise typer.Exit(code=1)
