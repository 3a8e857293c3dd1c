from datetime import date, time

import pytest

from medicare_backend.core.errors import InvalidAvailabilityError, ValidationError
from medicare_backend.scheduling.availability import (
    Slot,
    WeeklyAvailability,
    available_slots,
    generate_slots,
    parse_clock_time,
    weekday_name,
)

MONDAY = date(2024, 6, 10)


def test_weekday_name_starts_week_on_sunday() -> None:
    assert weekday_name(date(2024, 6, 9)) == 'sunday'
    assert weekday_name(MONDAY) == 'monday'
    assert weekday_name(date(2024, 6, 15)) == 'saturday'


def test_parse_clock_time_accepts_24h_minutes() -> None:
    assert parse_clock_time('09:30') == time(9, 30)
    assert parse_clock_time(' 23:59 ') == time(23, 59)
    assert parse_clock_time(time(7, 15)) == time(7, 15)


@pytest.mark.parametrize('value', ['9:00', '24:00', '12:60', '9am', '', '10:00:30'])
def test_parse_clock_time_rejects_malformed_values(value: str) -> None:
    with pytest.raises(ValueError):
        parse_clock_time(value)


def test_from_record_normalizes_comma_joined_days() -> None:
    availability = WeeklyAvailability.from_record(' Monday,friday,,WEDNESDAY ', '09:00', '17:00')

    assert availability.working_days == frozenset({'monday', 'wednesday', 'friday'})
    assert availability.to_record() == {
        'working_days': 'monday,wednesday,friday',
        'start_time': '09:00',
        'end_time': '17:00',
    }


@pytest.mark.parametrize(
    ('working_days', 'start_time', 'end_time'),
    [
        ('monday,funday', '09:00', '17:00'),
        ('monday', 'nine', '17:00'),
        ('monday', '09:00', '5pm'),
        ('monday', '17:00', '09:00'),
    ],
)
def test_from_record_rejects_malformed_schedules(working_days: str, start_time: str, end_time: str) -> None:
    with pytest.raises(InvalidAvailabilityError):
        WeeklyAvailability.from_record(working_days, start_time, end_time)


def test_generate_slots_for_single_monday_within_a_week() -> None:
    availability = WeeklyAvailability.from_record({'monday'}, '09:00', '11:00')

    slots = list(generate_slots(availability, horizon_days=7, step_minutes=30, today=MONDAY))

    assert slots == [
        Slot(MONDAY, time(9, 0)),
        Slot(MONDAY, time(9, 30)),
        Slot(MONDAY, time(10, 0)),
        Slot(MONDAY, time(10, 30)),
    ]


def test_generate_slots_includes_next_monday_when_in_range() -> None:
    availability = WeeklyAvailability.from_record('monday', '09:00', '10:00')

    slots = list(generate_slots(availability, horizon_days=8, step_minutes=30, today=MONDAY))

    assert [slot.as_wire() for slot in slots] == [
        {'date': '2024-06-10', 'time': '09:00'},
        {'date': '2024-06-10', 'time': '09:30'},
        {'date': '2024-06-17', 'time': '09:00'},
        {'date': '2024-06-17', 'time': '09:30'},
    ]


def test_generate_slots_is_restartable_and_chronological() -> None:
    availability = WeeklyAvailability.from_record('monday,tuesday,thursday', '08:15', '10:00')

    sequence = generate_slots(availability, horizon_days=14, step_minutes=45, today=date(2024, 6, 12))
    first_pass = list(sequence)
    second_pass = list(sequence)

    assert first_pass == second_pass
    assert first_pass == sorted(first_pass, key=lambda slot: (slot.date, slot.time))
    assert len(set(first_pass)) == len(first_pass)
    assert {slot.time for slot in first_pass} == {time(8, 15), time(9, 0), time(9, 45)}


def test_generate_slots_is_lazy() -> None:
    availability = WeeklyAvailability.from_record('monday', '00:00', '23:59')

    iterator = iter(generate_slots(availability, horizon_days=10_000, step_minutes=1, today=MONDAY))

    assert next(iterator) == Slot(MONDAY, time(0, 0))


@pytest.mark.parametrize(
    ('working_days', 'start_time', 'end_time'),
    [
        ('', '09:00', '17:00'),
        ('monday', '09:00', '09:00'),
    ],
)
def test_generate_slots_empty_cases(working_days: str, start_time: str, end_time: str) -> None:
    availability = WeeklyAvailability.from_record(working_days, start_time, end_time)

    assert list(generate_slots(availability, horizon_days=30, step_minutes=30, today=MONDAY)) == []


def test_generate_slots_rejects_bad_parameters() -> None:
    availability = WeeklyAvailability.from_record('monday', '09:00', '11:00')

    with pytest.raises(ValidationError):
        generate_slots(availability, horizon_days=7, step_minutes=0, today=MONDAY)
    with pytest.raises(ValidationError):
        generate_slots(availability, horizon_days=-1, step_minutes=30, today=MONDAY)


def test_available_slots_skips_occupied_pairs() -> None:
    availability = WeeklyAvailability.from_record('monday', '09:00', '10:00')
    slots = generate_slots(availability, horizon_days=1, step_minutes=30, today=MONDAY)

    remaining = list(available_slots(slots, {(MONDAY, time(9, 0))}))

    assert remaining == [Slot(MONDAY, time(9, 30))]
