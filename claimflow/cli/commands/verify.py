"""``claimflow verify``: recompute a claim's hash chain."""

from __future__ import annotations

import typer

from claimflow.cli.context import console, run_with_runtime
from claimflow.runtime import Runtime
from claimflow.storage.base import ClaimNotFoundError


def verify_cmd(
    claim_id: str = typer.Argument(..., help="Claim whose ledger to verify."),
) -> None:
    """Verify the audit ledger of a claim.  Exits 1 on any break."""

    async def _verify(runtime: Runtime) -> int:
        if await runtime.store.get_claim(claim_id) is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found.")
        await runtime.ledger.verify_chain(claim_id)
        return len(await runtime.ledger.get_events(claim_id))

    count = run_with_runtime(_verify)
    console.print(f"[green]Chain valid[/green] for {claim_id} ({count} events).")
