"""Scheduling rules: who may act on an appointment and when two bookings clash.

These are decision functions only. A ``False`` answer is a policy denial that
the caller turns into the matching error; nothing here touches storage.
"""

from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Any, Iterable, Protocol


class Role(str, Enum):
    PATIENT = 'patient'
    DOCTOR = 'doctor'


class AppointmentStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'


ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}
    ),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
}


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as handed over by the auth layer."""

    id: str
    role: Role

    def __post_init__(self) -> None:
        object.__setattr__(self, 'id', str(self.id))
        object.__setattr__(self, 'role', Role(self.role))


class SlotKey(Protocol):
    doctor_id: Any
    appointment_date: date
    appointment_time: time


@dataclass(frozen=True)
class SlotRequest:
    doctor_id: str
    appointment_date: date
    appointment_time: time


def _same_id(left: Any, right: Any) -> bool:
    return left is not None and right is not None and str(left) == str(right)


def is_owner(identity: Identity, appointment: Any) -> bool:
    if identity.role == Role.PATIENT:
        return _same_id(identity.id, appointment.patient_id)
    if identity.role == Role.DOCTOR:
        return _same_id(identity.id, appointment.doctor_id)
    return False


def can_book(identity: Identity) -> bool:
    return identity.role == Role.PATIENT


def is_active(status: str) -> bool:
    return AppointmentStatus(status) in ACTIVE_STATUSES


def can_transition(current: str, new: str) -> bool:
    current_status = AppointmentStatus(current)
    new_status = AppointmentStatus(new)
    if current_status == new_status:
        return True
    return new_status in ALLOWED_TRANSITIONS[current_status]


def clashes(candidate: SlotKey, existing: Iterable[Any], exclude_id: Any = None) -> bool:
    for appointment in existing:
        if exclude_id is not None and _same_id(appointment.id, exclude_id):
            continue
        if appointment.status == AppointmentStatus.CANCELLED.value:
            continue
        if (
            _same_id(appointment.doctor_id, candidate.doctor_id)
            and appointment.appointment_date == candidate.appointment_date
            and appointment.appointment_time == candidate.appointment_time
        ):
            return True
    return False
