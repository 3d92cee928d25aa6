"""``claimflow stream``: follow a run's progress events until it finishes."""

from __future__ import annotations

import json

import typer

from claimflow.cli.context import console, run_with_runtime
from claimflow.core.run_stream import StreamDone, stream_run_events
from claimflow.runtime import Runtime


def stream_cmd(
    run_id: str = typer.Argument(..., help="Run to follow."),
    from_seq: int = typer.Option(0, "--from-seq", help="Only events after this seq."),
) -> None:
    """Print run events as they arrive."""

    async def _follow(runtime: Runtime) -> StreamDone | None:
        done: StreamDone | None = None
        async for item in stream_run_events(
            runtime.store,
            run_id,
            from_seq=from_seq,
            poll_interval=runtime.settings.stream_poll_interval_seconds,
            max_attempts=runtime.settings.stream_max_attempts,
        ):
            if isinstance(item, StreamDone):
                done = item
                break
            typer.echo(f"{item.seq:>4} {item.event_type} {json.dumps(item.payload, default=str)}")
        return done

    done = run_with_runtime(_follow)
    if done is None:
        console.print(f"[yellow]Stopped following {run_id}; run still in progress.[/yellow]")
    else:
        console.print(f"[bold]done[/bold] {done.status.value}")
