"""Administrative commands: ``purge`` and ``keygen``."""

from __future__ import annotations

import typer

from claimflow.bridge.pii_cipher import generate_master_key
from claimflow.cli.context import console, run_with_runtime
from claimflow.runtime import Runtime


def purge_cmd(
    claim_id: str = typer.Argument(..., help="Claim to delete with its ledger and runs."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Permanently delete a claim, its audit ledger, runs and run events."""
    if not yes:
        typer.confirm(f"Purge {claim_id} and its entire audit ledger?", abort=True)

    async def _purge(runtime: Runtime) -> dict[str, int]:
        return await runtime.store.purge_claim(claim_id)

    counts = run_with_runtime(_purge)
    console.print(
        f"Purged {claim_id}: {counts['events']} events, "
        f"{counts['runs']} runs, {counts['run_events']} run events."
    )


def keygen_cmd() -> None:
    """Print a new base64 PII master key for CLAIMFLOW_MASTER_KEY_B64."""
    typer.echo(generate_master_key())
