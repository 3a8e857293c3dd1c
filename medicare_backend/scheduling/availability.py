"""Weekly doctor availability and the bookable slots derived from it.

A doctor publishes a recurring pattern (working weekdays plus a daily
start/end wall-clock time). Slots are never stored; they are projected from
the pattern over a bounded horizon starting today.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator

from medicare_backend.core.errors import InvalidAvailabilityError, ValidationError

WEEKDAYS = ('sunday', 'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday')

_CLOCK_TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')


def parse_clock_time(value: str | time) -> time:
    """Parse a 24h ``HH:MM`` string into a :class:`time` at minute precision."""
    if isinstance(value, time):
        if value.second or value.microsecond:
            raise ValueError(f'{value.isoformat()} is not on a whole minute.')
        return value.replace(tzinfo=None)

    match = _CLOCK_TIME_PATTERN.match((value or '').strip())
    if not match:
        raise ValueError(f'{value!r} is not a valid HH:MM time.')
    return time(int(match.group(1)), int(match.group(2)))


def format_clock_time(value: time) -> str:
    return value.strftime('%H:%M')


def weekday_name(day: date) -> str:
    # date.weekday() counts from Monday; WEEKDAYS starts on Sunday.
    return WEEKDAYS[(day.weekday() + 1) % 7]


def _normalize_working_days(working_days: str | Iterable[str] | None) -> frozenset[str]:
    if working_days is None:
        return frozenset()
    if isinstance(working_days, str):
        working_days = working_days.split(',')

    names = {name.strip().lower() for name in working_days if name and name.strip()}
    unknown = sorted(names.difference(WEEKDAYS))
    if unknown:
        raise InvalidAvailabilityError(f'Unknown working day(s): {", ".join(unknown)}.')
    return frozenset(names)


@dataclass(frozen=True)
class Slot:
    date: date
    time: time

    def as_wire(self) -> dict:
        return {'date': self.date.isoformat(), 'time': format_clock_time(self.time)}


@dataclass(frozen=True)
class WeeklyAvailability:
    working_days: frozenset[str]
    start_time: time
    end_time: time

    @classmethod
    def from_record(
        cls,
        working_days: str | Iterable[str] | None,
        start_time: str | time,
        end_time: str | time,
    ) -> 'WeeklyAvailability':
        days = _normalize_working_days(working_days)
        try:
            start = parse_clock_time(start_time)
            end = parse_clock_time(end_time)
        except ValueError as exc:
            raise InvalidAvailabilityError(str(exc)) from exc

        if start > end:
            raise InvalidAvailabilityError('Start time must be before end time.')

        return cls(working_days=days, start_time=start, end_time=end)

    def to_record(self) -> dict:
        return {
            'working_days': ','.join(day for day in WEEKDAYS if day in self.working_days),
            'start_time': format_clock_time(self.start_time),
            'end_time': format_clock_time(self.end_time),
        }

    def works_on(self, day: date) -> bool:
        return weekday_name(day) in self.working_days


class SlotSequence:
    """Lazy, restartable view over the slots of a weekly availability.

    Each iteration walks the horizon again from ``today`` so the sequence can
    be consumed any number of times and always yields the same slots.
    """

    def __init__(self, availability: WeeklyAvailability, horizon_days: int, step_minutes: int, today: date) -> None:
        self.availability = availability
        self.horizon_days = horizon_days
        self.step_minutes = step_minutes
        self.today = today

    def __iter__(self) -> Iterator[Slot]:
        step = timedelta(minutes=self.step_minutes)

        for offset in range(self.horizon_days):
            current_day = self.today + timedelta(days=offset)
            if not self.availability.works_on(current_day):
                continue

            current_start = datetime.combine(current_day, self.availability.start_time)
            day_end = datetime.combine(current_day, self.availability.end_time)
            while current_start < day_end:
                yield Slot(date=current_day, time=current_start.time())
                current_start += step

    def __repr__(self) -> str:
        return (
            f'SlotSequence(today={self.today.isoformat()}, horizon_days={self.horizon_days}, '
            f'step_minutes={self.step_minutes})'
        )


def generate_slots(
    availability: WeeklyAvailability,
    horizon_days: int = 30,
    step_minutes: int = 30,
    today: date | None = None,
) -> SlotSequence:
    if horizon_days < 0:
        raise ValidationError('Horizon must be zero or more days.')
    if step_minutes <= 0:
        raise ValidationError('Slot step must be a positive number of minutes.')

    return SlotSequence(availability, horizon_days, step_minutes, today or date.today())


def available_slots(slots: Iterable[Slot], occupied: set[tuple[date, time]]) -> Iterator[Slot]:
    for slot in slots:
        if (slot.date, slot.time) not in occupied:
            yield slot
