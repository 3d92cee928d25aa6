"""claimflow CLI: Typer-based command-line interface.

Provides the ``claimflow`` command with subcommands for submitting claims,
running the agent pipeline, inspecting and verifying a claim's audit
ledger, recording reviewer decisions and administrative maintenance.

All output uses Rich for formatted terminal display.
"""
