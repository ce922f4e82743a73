"""
Tests for scheduled exports: next-run calculation and the schedule manager.
"""

import io

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from openpyxl import load_workbook

from waitlist.export import (
    ExportOptions, ExportStatus, ExportStyle, ScheduleError, ScheduleType, ExportSchedule,
    ExportScheduleManager, calculate_next_run, describe_schedule, is_overdue,
    parse_time, default_filename
)

# Wednesday
NOW = datetime(2024, 6, 5, 10, 0, tzinfo=timezone.utc)


def make_schedule(schedule_type, time="09:00", **kwargs):
    return ExportSchedule(
        name="Signups",
        dataset_name="waitlist",
        options=ExportOptions(format="csv"),
        schedule_type=schedule_type,
        time=time,
        **kwargs
    )


def entries():
    return [
        {"name": "Alice", "city": "Lyon", "created_at": "2024-06-01T08:00:00Z"},
        {"name": "Bob", "city": "Paris", "created_at": "2024-06-02T09:00:00Z"},
    ]


class TestNextRun:
    """Test next-run calculation"""

    def test_daily_time_already_passed(self):
        next_run = calculate_next_run(make_schedule(ScheduleType.DAILY), NOW)
        assert next_run == datetime(2024, 6, 6, 9, 0, tzinfo=timezone.utc)

    def test_daily_later_today(self):
        next_run = calculate_next_run(make_schedule(ScheduleType.DAILY, time="18:30"), NOW)
        assert next_run == datetime(2024, 6, 5, 18, 30, tzinfo=timezone.utc)

    def test_once_behaves_like_daily(self):
        next_run = calculate_next_run(make_schedule(ScheduleType.ONCE), NOW)
        assert next_run == datetime(2024, 6, 6, 9, 0, tzinfo=timezone.utc)

    def test_weekly_upcoming_day(self):
        schedule = make_schedule(ScheduleType.WEEKLY, day_of_week=1)  # Monday
        assert calculate_next_run(schedule, NOW) == datetime(2024, 6, 10, 9, 0, tzinfo=timezone.utc)

    def test_weekly_same_day_passed(self):
        schedule = make_schedule(ScheduleType.WEEKLY, day_of_week=3)  # Wednesday
        assert calculate_next_run(schedule, NOW) == datetime(2024, 6, 12, 9, 0, tzinfo=timezone.utc)

    def test_weekly_same_day_later(self):
        schedule = make_schedule(ScheduleType.WEEKLY, time="11:00", day_of_week=3)
        assert calculate_next_run(schedule, NOW) == datetime(2024, 6, 5, 11, 0, tzinfo=timezone.utc)

    def test_weekly_sunday(self):
        schedule = make_schedule(ScheduleType.WEEKLY, day_of_week=0)
        assert calculate_next_run(schedule, NOW) == datetime(2024, 6, 9, 9, 0, tzinfo=timezone.utc)

    def test_monthly_clamps_to_month_end(self):
        schedule = make_schedule(ScheduleType.MONTHLY, day_of_month=31)
        assert calculate_next_run(schedule, NOW) == datetime(2024, 6, 30, 9, 0, tzinfo=timezone.utc)

    def test_monthly_passed_moves_to_next_month(self):
        schedule = make_schedule(ScheduleType.MONTHLY, day_of_month=5)
        assert calculate_next_run(schedule, NOW) == datetime(2024, 7, 5, 9, 0, tzinfo=timezone.utc)

    def test_monthly_rolls_over_year(self):
        schedule = make_schedule(ScheduleType.MONTHLY, day_of_month=1)
        now = datetime(2024, 12, 20, 12, 0, tzinfo=timezone.utc)
        assert calculate_next_run(schedule, now) == datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

    def test_timezone_respected(self):
        schedule = make_schedule(ScheduleType.DAILY, timezone="America/New_York")
        next_run = calculate_next_run(schedule, NOW)

        assert next_run.astimezone(timezone.utc) == datetime(2024, 6, 5, 13, 0, tzinfo=timezone.utc)
        assert next_run.hour == 9

    def test_naive_now_is_utc(self):
        next_run = calculate_next_run(make_schedule(ScheduleType.DAILY), NOW.replace(tzinfo=None))
        assert next_run == datetime(2024, 6, 6, 9, 0, tzinfo=timezone.utc)


class TestScheduleHelpers:
    """Test parsing, naming and descriptions"""

    def test_parse_time(self):
        assert parse_time("09:00") == (9, 0)
        assert parse_time("23:59") == (23, 59)
        assert parse_time("7:05") == (7, 5)

    @pytest.mark.parametrize("value", ["24:00", "9am", "12:60", ""])
    def test_parse_time_invalid(self, value):
        with pytest.raises(ScheduleError):
            parse_time(value)

    def test_default_filename(self):
        assert default_filename("Weekly Signup  Report") == "weekly_signup_report"

    def test_describe_schedule(self):
        assert describe_schedule(make_schedule(ScheduleType.DAILY)) == "Daily at 09:00"
        assert describe_schedule(make_schedule(ScheduleType.ONCE, time="14:15")) == "Once at 14:15"
        assert describe_schedule(make_schedule(ScheduleType.WEEKLY, day_of_week=1)) == "Weekly on Mon at 09:00"
        assert describe_schedule(make_schedule(ScheduleType.MONTHLY, day_of_month=15)) == \
            "Monthly on day 15 at 09:00"

    def test_validation(self):
        with pytest.raises(ScheduleError):
            make_schedule(ScheduleType.WEEKLY).validate()
        with pytest.raises(ScheduleError):
            make_schedule(ScheduleType.WEEKLY, day_of_week=7).validate()
        with pytest.raises(ScheduleError):
            make_schedule(ScheduleType.MONTHLY, day_of_month=32).validate()
        with pytest.raises(ScheduleError):
            make_schedule(ScheduleType.DAILY, timezone="Mars/Olympus_Mons").validate()

        make_schedule(ScheduleType.MONTHLY, day_of_month=31).validate()


class TestExportScheduleManager:
    """Test the in-memory schedule manager"""

    def setup_method(self):
        self.manager = ExportScheduleManager()

    def test_create_schedule(self):
        schedule = self.manager.create_schedule(
            "Weekly Report", "waitlist", ExportOptions(format="xlsx"),
            schedule_type="weekly", day_of_week=1, now=NOW
        )

        assert schedule.schedule_type == ScheduleType.WEEKLY
        assert schedule.options.filename == "weekly_report"
        assert schedule.next_run == datetime(2024, 6, 10, 9, 0, tzinfo=timezone.utc)
        assert schedule.is_active
        assert schedule.run_count == 0
        assert self.manager.get_schedule(schedule.id) is schedule

    def test_create_schedule_keeps_explicit_filename(self):
        schedule = self.manager.create_schedule(
            "Weekly Report", "waitlist", ExportOptions(format="csv", filename="signups"), now=NOW
        )
        assert schedule.options.filename == "signups"

    def test_create_schedule_rejects_invalid(self):
        with pytest.raises(ScheduleError):
            self.manager.create_schedule("", "waitlist", ExportOptions())
        with pytest.raises(ScheduleError):
            self.manager.create_schedule("Monthly", "waitlist", ExportOptions(),
                                         schedule_type=ScheduleType.MONTHLY, now=NOW)
        assert self.manager.list_schedules() == []

    def test_run_now(self):
        schedule = self.manager.create_schedule("Daily Signups", "waitlist", ExportOptions(format="csv"), now=NOW)
        sink = Mock()
        ran_at = NOW + timedelta(hours=1)

        artifact = self.manager.run_now(schedule.id, entries(), sink=sink, now=ran_at)

        assert artifact.filename == "daily_signups.csv"
        sink.assert_called_once_with(artifact)
        assert schedule.run_count == 1
        assert schedule.last_run == ran_at
        assert schedule.next_run == datetime(2024, 6, 6, 9, 0, tzinfo=timezone.utc)

    def test_run_now_failure_leaves_bookkeeping(self):
        schedule = self.manager.create_schedule("Broken", "waitlist", ExportOptions(format="xml"), now=NOW)

        with pytest.raises(ValueError):
            self.manager.run_now(schedule.id, entries(), now=NOW)

        assert schedule.run_count == 0
        assert schedule.last_run is None

    def test_once_schedule_deactivates(self):
        schedule = self.manager.create_schedule("One Off", "waitlist", ExportOptions(format="json"),
                                                schedule_type=ScheduleType.ONCE, now=NOW)
        self.manager.run_now(schedule.id, entries(), now=NOW)

        assert not schedule.is_active
        assert self.manager.list_schedules(active_only=True) == []

    def test_run_due_isolates_failures(self):
        good = self.manager.create_schedule("Good", "waitlist", ExportOptions(format="csv"), now=NOW)
        bad = self.manager.create_schedule("Bad", "missing", ExportOptions(format="csv"), now=NOW)

        def provider(dataset_name):
            if dataset_name == "missing":
                raise KeyError(dataset_name)
            return entries()

        later = datetime(2024, 6, 6, 10, 0, tzinfo=timezone.utc)
        sink = Mock()
        results = {entry.dataset_name: entry for entry in self.manager.run_due(provider, now=later, sink=sink)}

        assert results["Good"].status == ExportStatus.COMPLETED
        assert results["Good"].filename == "good.csv"
        assert results["Bad"].status == ExportStatus.ERROR
        assert sink.call_count == 1

        assert good.run_count == 1
        assert good.next_run == datetime(2024, 6, 7, 9, 0, tzinfo=timezone.utc)
        assert bad.run_count == 0
        assert self.manager.due_schedules(later) == [bad]

    def test_nothing_due(self):
        self.manager.create_schedule("Daily", "waitlist", ExportOptions(), now=NOW)
        provider = Mock()

        assert self.manager.run_due(provider, now=NOW) == []
        provider.assert_not_called()

    def test_toggle_schedule(self):
        schedule = self.manager.create_schedule("Daily", "waitlist", ExportOptions(), now=NOW)
        later = datetime(2024, 6, 8, 10, 0, tzinfo=timezone.utc)

        self.manager.toggle_schedule(schedule.id, False)
        assert self.manager.due_schedules(later) == []
        assert not is_overdue(schedule, later)

        self.manager.toggle_schedule(schedule.id, True, now=later)
        assert schedule.next_run == datetime(2024, 6, 9, 9, 0, tzinfo=timezone.utc)

    def test_list_schedules_ordered_by_next_run(self):
        monthly = self.manager.create_schedule("Monthly", "waitlist", ExportOptions(),
                                               schedule_type=ScheduleType.MONTHLY, day_of_month=20, now=NOW)
        daily = self.manager.create_schedule("Daily", "waitlist", ExportOptions(), now=NOW)

        assert self.manager.list_schedules() == [daily, monthly]

    def test_delete_and_unknown_ids(self):
        schedule = self.manager.create_schedule("Daily", "waitlist", ExportOptions(), now=NOW)
        self.manager.delete_schedule(schedule.id)

        with pytest.raises(ScheduleError):
            self.manager.get_schedule(schedule.id)
        with pytest.raises(ScheduleError):
            self.manager.delete_schedule(schedule.id)
        with pytest.raises(ScheduleError):
            self.manager.run_now("nope", entries())

    def test_scheduled_exports_use_manager_style(self):
        manager = ExportScheduleManager(style=ExportStyle(primary_color="1D4ED8"))
        schedule = manager.create_schedule("Branded", "waitlist", ExportOptions(format="xlsx"), now=NOW)

        artifact = manager.run_now(schedule.id, entries(), now=NOW)
        ws = load_workbook(io.BytesIO(artifact.content))["Export"]
        assert ws["A1"].fill.start_color.rgb.endswith("1D4ED8")

        later = datetime(2024, 6, 7, 10, 0, tzinfo=timezone.utc)
        sink = Mock()
        manager.run_due(lambda name: entries(), now=later, sink=sink)
        ws = load_workbook(io.BytesIO(sink.call_args.args[0].content))["Export"]
        assert ws["A1"].fill.start_color.rgb.endswith("1D4ED8")

    def test_is_overdue(self):
        schedule = self.manager.create_schedule("Daily", "waitlist", ExportOptions(), now=NOW)

        assert not is_overdue(schedule, NOW)
        assert is_overdue(schedule, datetime(2024, 6, 7, 0, 0, tzinfo=timezone.utc))

    def test_to_dict(self):
        schedule = self.manager.create_schedule("Weekly Report", "waitlist", ExportOptions(format="pdf"),
                                                schedule_type=ScheduleType.WEEKLY, day_of_week=5, now=NOW)
        data = schedule.to_dict()

        assert data["schedule_type"] == "weekly"
        assert data["summary"] == "Weekly on Fri at 09:00"
        assert data["options"]["format"] == "pdf"
        assert data["options"]["filename"] == "weekly_report"
        assert data["next_run"] == "2024-06-07T09:00:00+00:00"
        assert data["last_run"] is None
