"""Shared CLI plumbing: runtime construction, async bridging, error exits."""

from __future__ import annotations

from typing import Awaitable, Callable, NoReturn, TypeVar

import anyio
import typer
from rich.console import Console

from claimflow.bridge.pii_cipher import CipherError
from claimflow.config import Settings
from claimflow.core.audit_ledger import LedgerIntegrityError
from claimflow.core.production_guard import ProductionConfigError
from claimflow.core.stage_machine import InvalidTransitionError, StageConflictError
from claimflow.runtime import Runtime
from claimflow.storage.base import ClaimNotFoundError, RunNotFoundError

T = TypeVar("T")

console = Console()

# Domain failures reported as a red one-liner and exit code 1.
CLI_ERRORS = (
    ClaimNotFoundError,
    RunNotFoundError,
    StageConflictError,
    InvalidTransitionError,
    LedgerIntegrityError,
    CipherError,
    ProductionConfigError,
)


def fail(message: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code=1)


def build_runtime() -> Runtime:
    """Fresh settings are read per command so the environment always applies."""
    return Runtime(Settings())


def run_with_runtime(fn: Callable[[Runtime], Awaitable[T]]) -> T:
    """Build the runtime, await *fn* with it, and close it again."""

    async def _main() -> T:
        runtime = build_runtime()
        try:
            return await fn(runtime)
        finally:
            await runtime.aclose()

    try:
        return anyio.run(_main)
    except CLI_ERRORS as exc:
        fail(str(exc))
