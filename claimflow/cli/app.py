"""Main Typer application: imports and registers all CLI commands.

Entry point: ``claimflow`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from claimflow.cli.commands.admin import keygen_cmd, purge_cmd
from claimflow.cli.commands.decide import decide_cmd
from claimflow.cli.commands.queue import queue_cmd
from claimflow.cli.commands.run import run_cmd
from claimflow.cli.commands.show import show_cmd
from claimflow.cli.commands.stream import stream_cmd
from claimflow.cli.commands.submit import submit_cmd
from claimflow.cli.commands.verify import verify_cmd
from claimflow.config import settings

app = typer.Typer(
    name="claimflow",
    help="claimflow: agent-driven insurance claim pipeline with a verifiable audit ledger.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Install Rich logging on stderr before any command runs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


# Register subcommands
app.command(name="submit", help="Submit a new claim from a JSON file.")(submit_cmd)
app.command(name="run", help="Run the automated pipeline for a claim.")(run_cmd)
app.command(name="show", help="Show a claim, its ledger and its runs.")(show_cmd)
app.command(name="verify", help="Verify a claim's audit hash chain.")(verify_cmd)
app.command(name="decide", help="Record a reviewer decision.")(decide_cmd)
app.command(name="queue", help="List claims awaiting review.")(queue_cmd)
app.command(name="stream", help="Follow a run's progress events.")(stream_cmd)
app.command(name="purge", help="Delete a claim and its ledger.")(purge_cmd)
app.command(name="keygen", help="Generate a PII master key.")(keygen_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
