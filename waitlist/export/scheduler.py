"""
Scheduled Exports

Recurring export definitions (once, daily, weekly, monthly) and an in-memory
manager that works out when each one runs next and executes the ones that
are due. Something outside this module has to call ``run_due`` periodically.
"""

import calendar
import logging
import re
import uuid
from typing import Dict, List, Optional, Any, Callable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass, field
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ScheduleError
from .export_config import ExportOptions, ExportStyle
from .export_manager import ArtifactSink, ExportProgress, export_data
from .format_handlers import ExportArtifact

logger = logging.getLogger(__name__)

# Sunday first, matching day_of_week numbering
WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

_TIME_PATTERN = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)$')


class ScheduleType(Enum):
    """How often a scheduled export runs."""
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass
class ExportSchedule:
    """A saved export that runs on a schedule."""

    name: str
    dataset_name: str
    options: ExportOptions
    schedule_type: ScheduleType = ScheduleType.DAILY
    time: str = "09:00"  # HH:MM, local to timezone
    day_of_week: Optional[int] = None  # 0 = Sunday
    day_of_month: Optional[int] = None
    timezone: str = "UTC"
    description: str = ""

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    is_active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    run_count: int = 0

    @property
    def tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ScheduleError(f"Unknown timezone: {self.timezone}") from None

    def validate(self) -> None:
        """Check the definition is complete; raises ScheduleError otherwise."""
        parse_time(self.time)
        self.tzinfo  # raises for unknown zones
        if self.schedule_type == ScheduleType.WEEKLY:
            if self.day_of_week is None or not 0 <= self.day_of_week <= 6:
                raise ScheduleError("Weekly schedules need day_of_week between 0 (Sunday) and 6")
        if self.schedule_type == ScheduleType.MONTHLY:
            if self.day_of_month is None or not 1 <= self.day_of_month <= 31:
                raise ScheduleError("Monthly schedules need day_of_month between 1 and 31")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'dataset_name': self.dataset_name,
            'options': self.options.to_dict(),
            'schedule_type': self.schedule_type.value,
            'time': self.time,
            'day_of_week': self.day_of_week,
            'day_of_month': self.day_of_month,
            'timezone': self.timezone,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat(),
            'last_run': self.last_run.isoformat() if self.last_run else None,
            'next_run': self.next_run.isoformat() if self.next_run else None,
            'run_count': self.run_count,
            'summary': describe_schedule(self),
        }


def parse_time(value: str):
    """Split "HH:MM" into hours and minutes."""
    match = _TIME_PATTERN.match(value or "")
    if not match:
        raise ScheduleError(f"Invalid schedule time: {value!r} (expected HH:MM)")
    return int(match.group(1)), int(match.group(2))


def default_filename(schedule_name: str) -> str:
    """Filename derived from a schedule name ("Weekly Report" -> "weekly_report")."""
    return re.sub(r'\s+', '_', schedule_name.strip().lower())


def calculate_next_run(schedule: ExportSchedule, now: Optional[datetime] = None) -> datetime:
    """
    Work out the next moment a schedule should run after ``now``.

    Returns:
        Timezone-aware datetime in the schedule's timezone
    """
    tz = schedule.tzinfo
    now = _aware(now).astimezone(tz)
    hours, minutes = parse_time(schedule.time)
    at_time = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)

    if schedule.schedule_type in (ScheduleType.ONCE, ScheduleType.DAILY):
        if at_time <= now:
            at_time += timedelta(days=1)
        return at_time

    if schedule.schedule_type == ScheduleType.WEEKLY:
        # datetime.weekday() is Monday=0; schedules count from Sunday=0
        today = (now.weekday() + 1) % 7
        days_until = (schedule.day_of_week - today + 7) % 7
        if days_until == 0 and at_time <= now:
            days_until = 7
        return at_time + timedelta(days=days_until)

    if schedule.schedule_type == ScheduleType.MONTHLY:
        candidate = _month_day(at_time, now.year, now.month, schedule.day_of_month)
        if candidate <= now:
            year, month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)
            candidate = _month_day(at_time, year, month, schedule.day_of_month)
        return candidate

    raise ScheduleError(f"Unknown schedule type: {schedule.schedule_type}")


def _month_day(at_time: datetime, year: int, month: int, day: int) -> datetime:
    # Clamp day 31 to the last day of shorter months
    last_day = calendar.monthrange(year, month)[1]
    return at_time.replace(year=year, month=month, day=min(day, last_day))


def describe_schedule(schedule: ExportSchedule) -> str:
    """Human-readable summary, e.g. "Weekly on Mon at 09:00"."""
    if schedule.schedule_type == ScheduleType.ONCE:
        return f"Once at {schedule.time}"
    if schedule.schedule_type == ScheduleType.DAILY:
        return f"Daily at {schedule.time}"
    if schedule.schedule_type == ScheduleType.WEEKLY:
        return f"Weekly on {WEEKDAY_NAMES[schedule.day_of_week or 0]} at {schedule.time}"
    if schedule.schedule_type == ScheduleType.MONTHLY:
        return f"Monthly on day {schedule.day_of_month} at {schedule.time}"
    return "Unknown schedule"


def is_overdue(schedule: ExportSchedule, now: Optional[datetime] = None) -> bool:
    """Active schedule whose next run is already in the past."""
    if not schedule.is_active or schedule.next_run is None:
        return False
    return schedule.next_run < _aware(now)


def _aware(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ExportScheduleManager:
    """In-memory registry of scheduled exports."""

    def __init__(self, style: Optional[ExportStyle] = None):
        """
        Initialize schedule manager.

        Args:
            style: Styling applied to every scheduled export
        """
        self.style = style
        self._schedules: Dict[str, ExportSchedule] = {}

    def create_schedule(self, name: str, dataset_name: str, options: ExportOptions,
                        schedule_type: ScheduleType = ScheduleType.DAILY,
                        time: str = "09:00",
                        day_of_week: Optional[int] = None,
                        day_of_month: Optional[int] = None,
                        timezone_name: str = "UTC",
                        description: str = "",
                        is_active: bool = True,
                        now: Optional[datetime] = None) -> ExportSchedule:
        """
        Register a new scheduled export.

        The export filename defaults to the schedule name in snake case
        when the options carry none (or only the generic "export").

        Raises:
            ScheduleError: If the definition is invalid
        """
        if not name or not name.strip():
            raise ScheduleError("Schedule name is required")

        if not options.filename or options.filename == "export":
            options = options.with_filename(default_filename(name))

        schedule = ExportSchedule(
            name=name,
            dataset_name=dataset_name,
            options=options,
            schedule_type=ScheduleType(schedule_type),
            time=time,
            day_of_week=day_of_week,
            day_of_month=day_of_month,
            timezone=timezone_name,
            description=description,
            is_active=is_active,
        )
        schedule.validate()
        schedule.next_run = calculate_next_run(schedule, now)

        self._schedules[schedule.id] = schedule
        logger.info(f"Export scheduled: {schedule.name} ({describe_schedule(schedule)}), "
                    f"next run {schedule.next_run.isoformat()}")
        return schedule

    def get_schedule(self, schedule_id: str) -> ExportSchedule:
        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            raise ScheduleError(f"Schedule {schedule_id} not found")
        return schedule

    def list_schedules(self, active_only: bool = False) -> List[ExportSchedule]:
        """Schedules ordered by next run."""
        schedules = [s for s in self._schedules.values() if s.is_active or not active_only]
        far_future = datetime.max.replace(tzinfo=timezone.utc)
        schedules.sort(key=lambda s: s.next_run or far_future)
        return schedules

    def toggle_schedule(self, schedule_id: str, is_active: bool,
                        now: Optional[datetime] = None) -> ExportSchedule:
        """Pause or resume a schedule. Resuming recalculates the next run."""
        schedule = self.get_schedule(schedule_id)
        schedule.is_active = is_active
        if is_active:
            schedule.next_run = calculate_next_run(schedule, now)
        logger.info(f"Schedule {schedule.name} {'resumed' if is_active else 'paused'}")
        return schedule

    def delete_schedule(self, schedule_id: str) -> None:
        schedule = self.get_schedule(schedule_id)
        del self._schedules[schedule_id]
        logger.info(f"Schedule deleted: {schedule.name}")

    def due_schedules(self, now: Optional[datetime] = None) -> List[ExportSchedule]:
        now = _aware(now)
        return [s for s in self.list_schedules(active_only=True)
                if s.next_run is not None and s.next_run <= now]

    def run_now(self, schedule_id: str, records: Sequence[Mapping[str, Any]],
                sink: Optional[ArtifactSink] = None,
                now: Optional[datetime] = None) -> Optional[ExportArtifact]:
        """
        Run a schedule's export immediately.

        Errors propagate to the caller and leave the schedule's run
        bookkeeping unchanged.
        """
        schedule = self.get_schedule(schedule_id)
        artifact = export_data(records, schedule.options, sink=sink, style=self.style)
        self._record_run(schedule, now)
        return artifact

    def run_due(self, records_provider: Callable[[str], Sequence[Mapping[str, Any]]],
                now: Optional[datetime] = None,
                sink: Optional[ArtifactSink] = None) -> List[ExportProgress]:
        """
        Run every due schedule, one after another.

        A failing schedule is reported in its progress entry and does not
        stop the others; it stays due and is retried on the next call.

        Args:
            records_provider: Returns the records for a dataset name
            now: Current time
            sink: Receives every artifact

        Returns:
            One progress entry per schedule that was due
        """
        results = []
        for schedule in self.due_schedules(now):
            entry = ExportProgress(dataset_name=schedule.name)
            entry.mark_processing()
            try:
                records = records_provider(schedule.dataset_name)
                artifact = export_data(records, schedule.options, sink=sink, style=self.style)
            except Exception as e:
                entry.mark_error(str(e) or e.__class__.__name__)
                logger.error(f"Scheduled export failed: {schedule.name} - {e}")
            else:
                entry.mark_completed(artifact.filename if artifact else None)
                self._record_run(schedule, now)
            results.append(entry)
        return results

    def _record_run(self, schedule: ExportSchedule, now: Optional[datetime]) -> None:
        now = _aware(now)
        schedule.last_run = now
        schedule.run_count += 1
        if schedule.schedule_type == ScheduleType.ONCE:
            schedule.is_active = False
        else:
            schedule.next_run = calculate_next_run(schedule, now)
        logger.info(f"Scheduled export ran: {schedule.name} (run {schedule.run_count})")
