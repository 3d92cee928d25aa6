"""Run progress events: emission during a run and polling for followers.

``RunContext`` hands out strictly increasing ``seq`` numbers for one run.
``stream_run_events`` is the reading side: it polls the store and yields new
events until the run reaches a terminal status or the attempt budget is
spent.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import anyio
from pydantic import BaseModel, ConfigDict

from claimflow.models.runs import RunEvent, RunEventType, RunStatus
from claimflow.storage.base import DocumentStore

logger = logging.getLogger(__name__)


class RunContext:
    """Sequenced emitter bound to one run."""

    def __init__(self, store: DocumentStore, run_id: str, start_seq: int = 0) -> None:
        self._store = store
        self.run_id = run_id
        self._seq = start_seq

    @property
    def last_seq(self) -> int:
        return self._seq

    async def emit(
        self, event_type: RunEventType | str, payload: dict[str, Any] | None = None
    ) -> RunEvent:
        self._seq += 1
        event = RunEvent(
            run_id=self.run_id,
            seq=self._seq,
            event_type=event_type.value if isinstance(event_type, RunEventType) else event_type,
            payload=payload or {},
        )
        await self._store.put_run_event(event)
        return event


class StreamDone(BaseModel):
    """Final marker yielded once the followed run is terminal."""

    model_config = ConfigDict(frozen=True)

    event_type: str = "done"
    run_id: str
    status: RunStatus


async def stream_run_events(
    store: DocumentStore,
    run_id: str,
    *,
    from_seq: int = 0,
    poll_interval: float = 0.5,
    max_attempts: int = 120,
) -> AsyncIterator[RunEvent | StreamDone]:
    """Yield run events with ``seq > from_seq`` as they appear.

    Ends with a ``StreamDone`` when the run is SUCCEEDED or FAILED, or
    silently after *max_attempts* polls.
    """
    last_seq = from_seq
    for _attempt in range(max_attempts):
        for event in await store.get_run_events(run_id, last_seq):
            last_seq = max(last_seq, event.seq)
            yield event

        run = await store.get_run(run_id)
        if run is not None and run.is_terminal:
            yield StreamDone(run_id=run_id, status=run.status)
            return

        await anyio.sleep(poll_interval)

    logger.info("Stopped following run %s after %d polls", run_id, max_attempts)
