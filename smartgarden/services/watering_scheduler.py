"""
Watering schedules: turn the pump on at a time, and off ``duration`` minutes later.

Every arming of a schedule gets a new generation number. Start and stop
callbacks carry the generation they were armed with and do nothing once it
is stale, so a cancelled or rescheduled job can never fire an old stop.

All times are naive UTC, including the ``HH:MM`` of recurring schedules.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from functools import partial
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from smartgarden.core.clock import utc_naive
from smartgarden.core.config import settings
from smartgarden.db.session import SessionLocal
from smartgarden.models.schedule import SCHEDULE_ONETIME, SCHEDULE_RECURRING, Schedule
from smartgarden.services.command_dispatch import CommandDispatcher, dispatcher as default_dispatcher

logger = logging.getLogger(__name__)

START = "start"
STOP = "stop"


def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


def sunday_based_weekday(day: datetime) -> int:
    return (day.weekday() + 1) % 7


def parse_start_time(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def next_run(start_time: str, days_of_week: List[int], now: datetime) -> datetime:
    """Next datetime strictly after ``now`` at ``start_time`` on one of ``days_of_week`` (0 = Sunday)."""
    at = parse_start_time(start_time)
    days = set(days_of_week or range(7))
    for offset in range(8):
        candidate = datetime.combine((now + timedelta(days=offset)).date(), at)
        if candidate > now and sunday_based_weekday(candidate) in days:
            return candidate
    raise ValueError(f"No run found for {start_time} on {sorted(days)}")


@dataclass(frozen=True)
class Job:
    """Detached copy of a schedule row, safe to hand to timer threads."""

    schedule_id: UUID
    device_id: str
    schedule_type: str
    duration: int
    scheduled_at: Optional[datetime] = None
    start_time: Optional[str] = None
    days_of_week: List[int] = field(default_factory=list)

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> "Job":
        return cls(
            schedule_id=schedule.id,
            device_id=schedule.device_id,
            schedule_type=schedule.schedule_type,
            duration=schedule.duration,
            scheduled_at=utc_naive(schedule.scheduled_at),
            start_time=schedule.start_time,
            days_of_week=list(schedule.days_of_week or []),
        )


class WateringScheduler:
    def __init__(
        self,
        dispatcher: Optional[CommandDispatcher] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        timer_factory: Callable[[float, Callable[[], None]], Any] = thread_timer,
        clock: Callable[[], datetime] = datetime.utcnow,
        channel: Optional[str] = None,
    ):
        self.dispatcher = dispatcher or default_dispatcher
        self.session_factory = session_factory
        self.timer_factory = timer_factory
        self.clock = clock
        self.channel = channel or settings.SCHEDULE_CHANNEL

        self._lock = threading.Lock()
        self._generations: Dict[UUID, int] = {}
        self._timers: Dict[UUID, Dict[str, Any]] = {}

    # ========= Public API =========

    def schedule(self, schedule: Schedule) -> Optional[datetime]:
        """
        (Re)arms a schedule and returns the time its pump will start, or None
        when nothing was armed. Any previous arming of the same schedule is
        cancelled first.
        """
        job = Job.from_schedule(schedule)
        generation = self.cancel(job.schedule_id)

        if not schedule.is_active or schedule.is_completed:
            return None

        now = self.clock()
        if job.schedule_type == SCHEDULE_ONETIME:
            if job.scheduled_at is None or job.scheduled_at <= now:
                logger.info("One-time schedule %s is in the past, marking completed", job.schedule_id)
                self._mark_completed(job.schedule_id)
                return None
            run_at = job.scheduled_at
        elif job.schedule_type == SCHEDULE_RECURRING:
            run_at = next_run(job.start_time, job.days_of_week, now)
        else:
            logger.warning("Schedule %s has unknown type %s", job.schedule_id, job.schedule_type)
            return None

        self._arm(job, generation, START, (run_at - now).total_seconds(), run_at)
        logger.info("Schedule %s armed for %s (device %s)", job.schedule_id, run_at, job.device_id)
        return run_at

    def cancel(self, schedule_id: UUID) -> int:
        """Cancels start and stop timers of a schedule; returns the new generation."""
        with self._lock:
            generation = self._generations.get(schedule_id, 0) + 1
            self._generations[schedule_id] = generation
            timers = self._timers.pop(schedule_id, {})
        for timer in timers.values():
            timer.cancel()
        return generation

    def initialize(self) -> int:
        """Arms every active, not completed schedule. Called at startup."""
        db = self.session_factory()
        try:
            schedules = list(
                db.execute(
                    select(Schedule).where(Schedule.is_active.is_(True), Schedule.is_completed.is_(False))
                ).scalars()
            )
        finally:
            db.close()

        armed = sum(1 for s in schedules if self.schedule(s) is not None)
        logger.info("Initialized %d of %d schedules", armed, len(schedules))
        return armed

    def shutdown(self) -> None:
        with self._lock:
            ids = list(self._timers)
        for schedule_id in ids:
            self.cancel(schedule_id)

    def pending(self, schedule_id: UUID) -> List[str]:
        with self._lock:
            return sorted(self._timers.get(schedule_id, {}))

    # ========= Timers =========

    def _current(self, job: Job, generation: int) -> bool:
        return self._generations.get(job.schedule_id) == generation

    def _arm(
        self, job: Job, generation: int, kind: str, delay: float, run_at: Optional[datetime] = None
    ) -> None:
        if kind == START:
            callback = partial(self._fire_start, job, generation, run_at)
        else:
            callback = partial(self._fire_stop, job, generation)
        timer = self.timer_factory(max(delay, 0), callback)
        with self._lock:
            if not self._current(job, generation):
                return
            self._timers.setdefault(job.schedule_id, {})[kind] = timer
        timer.start()

    def _send(self, job: Job, state: int) -> None:
        command = f"{job.device_id}:{state}"
        try:
            self.dispatcher.dispatch(self.channel, command)
        except Exception:
            logger.exception("Schedule %s could not send %s", job.schedule_id, command)

    def _fire_start(self, job: Job, generation: int, run_at: Optional[datetime] = None) -> None:
        with self._lock:
            if not self._current(job, generation):
                return
            self._timers.get(job.schedule_id, {}).pop(START, None)

        logger.info("Schedule %s: pump on for device %s (%d min)", job.schedule_id, job.device_id, job.duration)
        self._send(job, 1)
        self._arm(job, generation, STOP, job.duration * 60)

        if job.schedule_type == SCHEDULE_RECURRING:
            now = self.clock()
            # next slot after the planned one, also when the timer fired early
            after = max(run_at, now) if run_at is not None else now
            next_at = next_run(job.start_time, job.days_of_week, after)
            self._arm(job, generation, START, (next_at - now).total_seconds(), next_at)

    def _fire_stop(self, job: Job, generation: int) -> None:
        with self._lock:
            if not self._current(job, generation):
                logger.debug("Dropping stale stop of schedule %s", job.schedule_id)
                return
            timers = self._timers.get(job.schedule_id, {})
            timers.pop(STOP, None)
            if not timers:
                self._timers.pop(job.schedule_id, None)

        logger.info("Schedule %s: pump off for device %s", job.schedule_id, job.device_id)
        self._send(job, 0)
        if job.schedule_type == SCHEDULE_ONETIME:
            self._mark_completed(job.schedule_id)

    def _mark_completed(self, schedule_id: UUID) -> None:
        db = self.session_factory()
        try:
            schedule = db.get(Schedule, schedule_id)
            if schedule is not None and not schedule.is_completed:
                schedule.is_completed = True
                db.commit()
        except Exception:
            db.rollback()
            logger.exception("Could not mark schedule %s completed", schedule_id)
        finally:
            db.close()


watering_scheduler = WateringScheduler()
