"""Post-transition hook.

Document and notification services subscribe here. Handlers run as background
tasks after the transition has committed; the engine never waits on them.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from claimflow.database import utcnow
from claimflow.engine.stages import Stage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageChanged:
    """An assessment moved from one stage to another."""

    assessment_id: str
    from_stage: Stage
    to_stage: Stage
    actor_id: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)


StageHandler = Callable[[StageChanged], Awaitable[None]]


class StageEventBus:
    """In-process subscriber list for stage_changed events."""

    def __init__(self) -> None:
        self._handlers: list[StageHandler] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, handler: StageHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: StageHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def clear(self) -> None:
        """Drop all handlers - used in tests."""
        self._handlers.clear()

    def publish(self, event: StageChanged) -> None:
        """Schedule every handler; returns immediately."""
        for handler in list(self._handlers):
            task = asyncio.create_task(self._run(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _run(self, handler: StageHandler, event: StageChanged) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "stage_changed handler %r failed for assessment %s (%s -> %s)",
                handler,
                event.assessment_id,
                event.from_stage.value,
                event.to_stage.value,
            )

    async def drain(self) -> None:
        """Wait for handlers still running (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# Module-level bus; tests clear its handlers
stage_events = StageEventBus()
