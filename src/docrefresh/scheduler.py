"""Schedule trigger — weekly discovery and run start.

``ScheduleTrigger.fire()`` performs one trigger: it discovers the tracked
documents, builds the immutable ``RunInput`` and starts a run under a fresh
instance id. ``serve()`` repeats that on a ``WeeklySchedule`` (Mondays at
02:00 UTC by default) until it is told to stop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .agents.orchestrator import UpdateOrchestrator
from .config import UpdateWorkerSettings
from .core.discovery import discover_work_items
from .core.journal import new_instance_id
from .core.models import RunInput, RunResult, WorkItem

log = logging.getLogger("docrefresh.scheduler")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WeeklySchedule:
    """Once a week at ``weekday`` (Monday = 0), ``hour:minute`` UTC."""

    weekday: int = 0
    hour: int = 2
    minute: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.weekday <= 6:
            raise ValueError(f"weekday must be 0-6, got {self.weekday}")
        if not 0 <= self.hour <= 23:
            raise ValueError(f"hour must be 0-23, got {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"minute must be 0-59, got {self.minute}")

    def next_fire(self, after: datetime) -> datetime:
        """First fire time strictly later than *after*."""
        if after.tzinfo is None:
            after = after.replace(tzinfo=timezone.utc)
        after = after.astimezone(timezone.utc)

        candidate = after.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        candidate += timedelta(days=(self.weekday - after.weekday()) % 7)
        if candidate <= after:
            candidate += timedelta(days=7)
        return candidate


class ScheduleTrigger:
    """Discovers work and starts runs, once or on a weekly schedule.

    Parameters
    ----------
    settings
        Worker settings (enabled flag, topics directory, engine limits).
    orchestrator
        Engine that executes each run.
    schedule
        Fire times for ``serve()``; defaults to the settings' schedule.
    clock
        Returns the current UTC time.
    """

    def __init__(
        self,
        settings: UpdateWorkerSettings,
        orchestrator: UpdateOrchestrator,
        *,
        schedule: WeeklySchedule | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings.clamped()
        self.orchestrator = orchestrator
        self.schedule = schedule or WeeklySchedule(
            settings.schedule_weekday, settings.schedule_hour, settings.schedule_minute,
        )
        self.clock = clock

    def build_run_input(self, items: list[WorkItem], now: datetime) -> RunInput:
        return RunInput(
            work_items=items,
            max_concurrent_evaluations=self.settings.max_parallel_agent_runs,
            token_budget_hint=self.settings.estimated_chars_per_token,
            trigger_time=now,
        )

    async def fire(
        self,
        now: datetime | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> Optional[RunResult]:
        """Trigger one run; returns ``None`` when there was nothing to run."""
        now = now or self.clock()
        log.info("Update check triggered at %s", now.isoformat())

        if not self.settings.enabled:
            log.warning("Update worker is disabled; skipping run")
            return None

        try:
            items = discover_work_items(self.settings.topics_dir, self.settings.file_pattern)
        except FileNotFoundError as exc:
            log.warning("%s; skipping run", exc)
            return None
        if not items:
            log.warning(
                "No %s files under %s; skipping run",
                self.settings.file_pattern, self.settings.topics_dir,
            )
            return None

        instance_id = new_instance_id()
        log.info("Starting run %s for %d documents", instance_id, len(items))
        return await self.orchestrator.run(
            self.build_run_input(items, now),
            instance_id=instance_id,
            cancel_event=cancel_event,
        )

    async def serve(self, stop_event: asyncio.Event) -> None:
        """Fire on every scheduled time until *stop_event* is set."""
        cycle = 0
        while not stop_event.is_set():
            fire_at = self.schedule.next_fire(self.clock())
            delay = max(0.0, (fire_at - self.clock()).total_seconds())
            log.info("Next update check at %s", fire_at.isoformat())

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            if stop_event.is_set():
                break

            cycle += 1
            try:
                result = await self.fire(fire_at, cancel_event=stop_event)
            except Exception:
                log.exception("Scheduled run %d failed", cycle)
                continue
            if result is not None:
                log.info("Scheduled run %d finished: %s", cycle, result.summary())

        log.info("Scheduler stopped")
