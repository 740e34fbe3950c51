"""Reminder scheduling: triggers, firing, cancellation, cron catch-up, persistence."""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from plantcare.services.reminders import ScheduleManager, next_cron_fire, parse_cron
from plantcare.utils.dates import parse_iso
from plantcare.utils.errors import InvalidTriggerError, StorageError, ValidationError


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestTriggers:
    def test_after_trigger(self, schedule, clock):
        reminder = schedule.schedule({"after": 30}, "water Fernie", plant_id="p1")
        assert reminder["trigger_kind"] == "after"
        assert parse_iso(reminder["next_fire_time"]) == clock() + timedelta(seconds=30)
        assert reminder["plant_id"] == "p1"

    def test_after_accepts_timedelta(self, schedule, clock):
        reminder = schedule.schedule({"after": timedelta(minutes=2)}, "mist")
        assert parse_iso(reminder["next_fire_time"]) == clock() + timedelta(minutes=2)

    def test_at_trigger_from_iso_string(self, schedule):
        reminder = schedule.schedule({"at": "2025-06-02T08:00:00Z"}, "fertilize")
        assert parse_iso(reminder["next_fire_time"]) == _utc(2025, 6, 2, 8, 0)

    def test_naive_at_is_utc(self, schedule):
        reminder = schedule.schedule({"at": datetime(2025, 6, 2, 8, 0)}, "fertilize")
        assert parse_iso(reminder["next_fire_time"]) == _utc(2025, 6, 2, 8, 0)

    def test_cron_first_occurrence(self, schedule):
        reminder = schedule.schedule({"cron": "30 * * * *"}, "hourly check")
        assert parse_iso(reminder["next_fire_time"]) == _utc(2025, 6, 1, 9, 30)

    def test_tool_layer_schedule_shape(self, schedule, clock):
        reminder = schedule.schedule({"type": "delayed", "delayInSeconds": 45}, "water")
        assert reminder["trigger_kind"] == "after"
        assert parse_iso(reminder["next_fire_time"]) == clock() + timedelta(seconds=45)

    @pytest.mark.parametrize("trigger", [
        None,
        "every day",
        {},
        {"after": 30, "cron": "* * * * *"},
        {"after": -5},
        {"after": "soon"},
        {"after": True},
        {"at": "next tuesday"},
        {"at": 12345},
        {"cron": "not a cron"},
        {"cron": "61 * * * *"},
        {"cron": ""},
        {"every": 5},
        {"type": "no-schedule"},
        {"type": "delayed"},
    ])
    def test_invalid_triggers(self, schedule, trigger):
        with pytest.raises(InvalidTriggerError):
            schedule.schedule(trigger, "water")
        assert schedule.list_reminders() == []

    def test_description_required(self, schedule):
        with pytest.raises(ValidationError):
            schedule.schedule({"after": 10}, "  ")


class TestFiring:
    def test_one_off_fires_exactly_once(self, schedule, clock):
        schedule.schedule({"after": 30}, "water Fernie", plant_id="fernie")

        clock.advance(seconds=31)
        fired = schedule.due_reminders(clock())
        assert len(fired) == 1
        assert fired[0]["description"] == "water Fernie"
        assert fired[0]["plant_id"] == "fernie"

        assert schedule.due_reminders(clock()) == []
        assert schedule.list_reminders() == []

    def test_not_due_yet(self, schedule, clock):
        schedule.schedule({"after": 30}, "water")
        clock.advance(seconds=29)
        assert schedule.due_reminders() == []
        assert len(schedule.list_reminders()) == 1

    def test_cancelled_reminder_never_fires(self, schedule, clock):
        reminder = schedule.schedule({"after": 60}, "water")
        assert schedule.cancel(reminder["id"]) is True

        clock.advance(hours=1)
        assert schedule.due_reminders(clock()) == []
        assert schedule.cancel(reminder["id"]) is False

    def test_cancel_unknown(self, schedule):
        assert schedule.cancel("missing") is False

    def test_cron_catch_up_fires_once(self, schedule, clock):
        reminder = schedule.schedule({"cron": "30 * * * *"}, "hourly check")

        # 09:30, 10:30, 11:30 and 12:30 were all missed
        as_of = _utc(2025, 6, 1, 12, 45)
        fired = schedule.due_reminders(as_of)
        assert [r["id"] for r in fired] == [reminder["id"]]
        assert parse_iso(fired[0]["next_fire_time"]) == _utc(2025, 6, 1, 9, 30)

        assert schedule.due_reminders(as_of) == []
        current = schedule.get_reminder(reminder["id"])
        assert parse_iso(current["next_fire_time"]) == _utc(2025, 6, 1, 13, 30)

    def test_cron_advances_strictly_after_occurrence(self, schedule):
        reminder = schedule.schedule({"cron": "30 * * * *"}, "hourly check")
        fired = schedule.due_reminders(_utc(2025, 6, 1, 9, 30))
        assert len(fired) == 1
        current = schedule.get_reminder(reminder["id"])
        assert parse_iso(current["next_fire_time"]) == _utc(2025, 6, 1, 10, 30)

    def test_fires_in_next_fire_order(self, schedule, clock):
        later = schedule.schedule({"after": 20}, "later")
        sooner = schedule.schedule({"after": 10}, "sooner")
        clock.advance(minutes=1)
        assert [r["id"] for r in schedule.due_reminders()] == [sooner["id"], later["id"]]

    def test_list_reminders_soonest_first(self, schedule):
        a = schedule.schedule({"after": 300}, "a")
        b = schedule.schedule({"after": 60}, "b")
        assert [r["id"] for r in schedule.list_reminders()] == [b["id"], a["id"]]

    def test_invalid_as_of(self, schedule):
        with pytest.raises(ValidationError):
            schedule.due_reminders("not a time")


class TestListeners:
    def test_listener_receives_event(self, schedule, clock):
        events = []
        schedule.add_listener(events.append)
        reminder = schedule.schedule({"after": 5}, "water Fernie", plant_id="fernie")

        clock.advance(seconds=10)
        schedule.due_reminders()

        assert events == [{
            "reminder_id": reminder["id"],
            "description": "water Fernie",
            "plant_id": "fernie",
            "fired_at": clock().isoformat(timespec="microseconds"),
        }]

    def test_failing_listener_does_not_block_firing(self, schedule, clock):
        def broken(event):
            raise RuntimeError("transcript unavailable")

        received = []
        schedule.add_listener(broken)
        schedule.add_listener(received.append)
        schedule.schedule({"after": 5}, "water")

        clock.advance(seconds=10)
        assert len(schedule.due_reminders()) == 1
        assert len(received) == 1
        assert schedule.list_reminders() == []


class TestPersistence:
    def test_reminders_reload_from_backend(self, backend, clock):
        first = ScheduleManager(backend, clock=clock)
        one_off = first.schedule({"after": 30}, "water")
        recurring = first.schedule({"cron": "0 8 * * *"}, "morning check")

        second = ScheduleManager(backend, clock=clock)
        assert {r["id"] for r in second.list_reminders()} == {one_off["id"], recurring["id"]}

        clock.advance(days=1)
        second.due_reminders()

        third = ScheduleManager(backend, clock=clock)
        remaining = third.list_reminders()
        assert [r["id"] for r in remaining] == [recurring["id"]]
        assert parse_iso(remaining[0]["next_fire_time"]) == _utc(2025, 6, 3, 8, 0)

    def test_cancel_is_persisted(self, backend, clock):
        manager = ScheduleManager(backend, clock=clock)
        reminder = manager.schedule({"after": 30}, "water")
        manager.cancel(reminder["id"])
        assert ScheduleManager(backend, clock=clock).list_reminders() == []


class TestCron:
    def test_parse_cron_normalizes_whitespace(self):
        assert parse_cron("0  9 * * *") is parse_cron("0 9 * * *")

    def test_next_cron_fire_is_strictly_after(self):
        assert next_cron_fire("0 9 * * *", _utc(2025, 6, 1, 9, 0)) == _utc(2025, 6, 2, 9, 0)
        assert next_cron_fire("0 9 * * *", _utc(2025, 6, 1, 8, 59, 59)) == _utc(2025, 6, 1, 9, 0)

    def test_sunday_is_weekday_zero(self):
        saturday_noon = _utc(2025, 5, 31, 12, 0)
        assert next_cron_fire("0 9 * * 0", saturday_noon) == _utc(2025, 6, 1, 9, 0)

    def test_seven_is_also_sunday(self):
        saturday_noon = _utc(2025, 5, 31, 12, 0)
        assert next_cron_fire("0 9 * * 7", saturday_noon) == _utc(2025, 6, 1, 9, 0)

    def test_weekday_range_is_monday_to_friday(self):
        sunday_noon = _utc(2025, 6, 1, 12, 0)
        assert next_cron_fire("0 9 * * 1-5", sunday_noon) == _utc(2025, 6, 2, 9, 0)
        friday_noon = _utc(2025, 6, 6, 12, 0)
        assert next_cron_fire("0 9 * * 1-5", friday_noon) == _utc(2025, 6, 9, 9, 0)

    def test_weekday_step_and_list(self):
        sunday_noon = _utc(2025, 6, 1, 12, 0)
        # */2 is Sunday, Tuesday, Thursday, Saturday
        assert next_cron_fire("0 9 * * */2", sunday_noon) == _utc(2025, 6, 3, 9, 0)
        assert next_cron_fire("0 9 * * 3,6", sunday_noon) == _utc(2025, 6, 4, 9, 0)

    def test_named_weekdays_still_accepted(self):
        sunday_noon = _utc(2025, 6, 1, 12, 0)
        assert next_cron_fire("0 9 * * mon-fri", sunday_noon) == _utc(2025, 6, 2, 9, 0)

    def test_day_of_month_or_weekday(self):
        # the 15th or any Monday, whichever comes first
        sunday_noon = _utc(2025, 6, 1, 12, 0)
        assert next_cron_fire("0 9 15 * 1", sunday_noon) == _utc(2025, 6, 2, 9, 0)
        assert next_cron_fire("0 9 15 * 1", _utc(2025, 6, 9, 12, 0)) == _utc(2025, 6, 15, 9, 0)

    @pytest.mark.parametrize("expression", ["0 9 * * 8", "0 9 * * 5-2", "0 9 * * */0", "0 9 * *"])
    def test_invalid_weekday_fields(self, expression):
        with pytest.raises(InvalidTriggerError):
            parse_cron(expression)


class TestStorageFailures:
    def test_failed_reminder_is_kept_and_others_still_fire(self, schedule, backend, clock):
        stuck = schedule.schedule({"after": 10}, "stuck")
        ok = schedule.schedule({"after": 20}, "ok")
        received = []
        schedule.add_listener(received.append)

        real_delete = backend.delete_reminder

        def flaky_delete(reminder_id):
            if reminder_id == stuck["id"]:
                raise StorageError("database is locked")
            return real_delete(reminder_id)

        clock.advance(minutes=1)
        with patch.object(backend, "delete_reminder", side_effect=flaky_delete):
            fired = schedule.due_reminders()

        assert [r["id"] for r in fired] == [ok["id"]]
        assert [e["reminder_id"] for e in received] == [ok["id"]]
        assert [r["id"] for r in schedule.list_reminders()] == [stuck["id"]]

        # the next poll retries the reminder that could not be removed
        assert [r["id"] for r in schedule.due_reminders()] == [stuck["id"]]
        assert schedule.list_reminders() == []
