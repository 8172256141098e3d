import uuid
from datetime import date, datetime, time

import pytest

from appointly.core.errors import ValidationError
from appointly.services.scheduling import (
    AnyAvailable,
    SpecificEmployee,
    WeeklySchedule,
    Weekday,
    WorkWindow,
    candidate_starts,
    employee_choice,
    free_starts,
    intervals_overlap,
    parse_clock,
)


class TestClock:
    def test_parses_hours_and_minutes(self):
        assert parse_clock("09:30") == 570
        assert parse_clock("9:05") == 545

    def test_end_of_day_is_allowed(self):
        assert parse_clock("24:00") == 1440

    @pytest.mark.parametrize("value", ["24:30", "12:60", "noon", ""])
    def test_rejects_malformed_times(self, value):
        with pytest.raises(ValidationError):
            parse_clock(value)


class TestWeeklySchedule:
    def test_maps_day_names_onto_weekdays(self):
        schedule = WeeklySchedule.from_mapping(
            {"Monday": {"start": "09:00", "end": "17:00"}, "saturday": {"start": "10:00", "end": "14:00"}}
        )

        assert schedule.window_for(Weekday.MONDAY) == WorkWindow(540, 1020)
        assert schedule.window_for(Weekday.SATURDAY) == WorkWindow(600, 840)
        assert schedule.window_for(Weekday.TUESDAY) is None
        # 2024-05-04 is a Saturday
        assert schedule.window_for(date(2024, 5, 4)) == WorkWindow(600, 840)

    def test_empty_day_means_not_working(self):
        schedule = WeeklySchedule.from_mapping({"monday": None, "tuesday": {}})
        assert schedule.window_for(Weekday.MONDAY) is None
        assert schedule.window_for(Weekday.TUESDAY) is None

    def test_unknown_day_is_rejected(self):
        with pytest.raises(ValidationError):
            WeeklySchedule.from_mapping({"funday": {"start": "09:00", "end": "17:00"}})

    def test_window_must_end_after_it_starts(self):
        with pytest.raises(ValidationError):
            WeeklySchedule.from_mapping({"monday": {"start": "17:00", "end": "09:00"}})

    def test_round_trips_to_json_shape(self):
        mapping = {"friday": {"start": "08:00", "end": "12:30"}}
        assert WeeklySchedule.from_mapping(mapping).to_mapping() == mapping


class TestEmployeeChoice:
    def test_missing_id_means_any_employee(self):
        assert employee_choice(None) == AnyAvailable()
        assert employee_choice("") == AnyAvailable()

    def test_id_is_parsed(self):
        employee_id = uuid.uuid4()
        assert employee_choice(str(employee_id)) == SpecificEmployee(employee_id)

    def test_invalid_id_is_rejected(self):
        with pytest.raises(ValidationError):
            employee_choice("not-a-uuid")


class TestCandidateStarts:
    def test_steps_by_thirty_minutes_while_service_fits(self):
        starts = candidate_starts(WorkWindow(540, 720), 60)  # 09:00-12:00
        assert starts == [540, 570, 600, 630, 660]

    def test_service_longer_than_window_has_no_starts(self):
        assert candidate_starts(WorkWindow(540, 570), 60) == []

    def test_non_positive_duration_is_rejected(self):
        with pytest.raises(ValidationError):
            candidate_starts(WorkWindow(540, 720), 0)


def test_touching_intervals_do_not_overlap():
    a = (datetime(2024, 5, 1, 9), datetime(2024, 5, 1, 10))
    b = (datetime(2024, 5, 1, 10), datetime(2024, 5, 1, 11))
    c = (datetime(2024, 5, 1, 9, 30), datetime(2024, 5, 1, 10, 30))

    assert not intervals_overlap(*a, *b)
    assert intervals_overlap(*a, *c)
    assert intervals_overlap(*c, *b)


def test_free_starts_skips_busy_intervals():
    day = date(2024, 5, 1)
    busy = [(datetime(2024, 5, 1, 10), datetime(2024, 5, 1, 11))]

    slots = free_starts(day, WorkWindow(540, 1080), 60, busy)

    assert time(9, 0) in slots
    assert time(9, 30) not in slots
    assert time(10, 0) not in slots
    assert time(10, 30) not in slots
    assert slots[1:3] == [time(11, 0), time(11, 30)]
    assert slots[-1] == time(17, 0)


def test_free_starts_without_window_is_empty():
    assert free_starts(date(2024, 5, 1), None, 30, []) == []


def test_lenient_schedule_treats_bad_days_as_days_off():
    schedule = WeeklySchedule.from_mapping(
        {
            "monday": {"start": "09:00", "end": "17:00"},
            "tuesday": {"start": "09:00", "end": ""},
            "wednesday": {"start": "18:00", "end": "08:00"},
            "funday": {"start": "09:00", "end": "17:00"},
        },
        strict=False,
    )

    assert schedule.window_for(Weekday.MONDAY) == WorkWindow(540, 1020)
    assert schedule.window_for(Weekday.TUESDAY) is None
    assert schedule.window_for(Weekday.WEDNESDAY) is None
