"""Booking ledger: the only code path that creates or changes appointments.

Mutations for one doctor run inside a per-doctor critical section so the
clash check and the write form a single step. The partial unique index on
``appointments`` backs this up across processes: a commit that would create
a second active appointment for the same doctor, date and time fails with an
``IntegrityError`` which is reported as a slot conflict.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from threading import Lock
from typing import Any, Iterator, Mapping

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from medicare_backend.core import config
from medicare_backend.core.errors import (
    AuthorizationError,
    NotFoundError,
    SlotConflictError,
    ValidationError,
)
from medicare_backend.models.appointment import Appointment
from medicare_backend.models.user import User
from medicare_backend.scheduling.availability import (
    Slot,
    WeeklyAvailability,
    available_slots,
    generate_slots,
    parse_clock_time,
)
from medicare_backend.scheduling.policy import (
    AppointmentStatus,
    Identity,
    Role,
    SlotRequest,
    can_book,
    can_transition,
    clashes,
    is_active,
    is_owner,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({'status', 'appointment_date', 'appointment_time', 'reason', 'notes'})
SLOT_TAKEN_MESSAGE = 'Time slot already booked.'

_doctor_locks: dict[str, Lock] = {}
_doctor_locks_guard = Lock()


def _doctor_lock(doctor_id: str) -> Lock:
    with _doctor_locks_guard:
        lock = _doctor_locks.get(doctor_id)
        if lock is None:
            lock = _doctor_locks[doctor_id] = Lock()
        return lock


def coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text_value = (value or '').strip() if isinstance(value, str) else ''
    if not text_value:
        raise ValidationError('Appointment date is required.')
    try:
        return datetime.strptime(text_value, '%Y-%m-%d').date()
    except ValueError as exc:
        raise ValidationError(f'{value!r} is not a valid YYYY-MM-DD date.') from exc


def coerce_time(value: Any) -> time:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError('Appointment time is required.')
    try:
        return parse_clock_time(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f'{value!r} is not a valid HH:MM time.') from exc


def coerce_reason(value: Any) -> str:
    normalized = value.strip() if isinstance(value, str) else ''
    if not normalized:
        raise ValidationError('Reason is required.')
    if len(normalized) > config.MAX_REASON_LENGTH:
        raise ValidationError(f'Reason must be {config.MAX_REASON_LENGTH} characters or fewer.')
    return normalized


def coerce_notes(value: Any) -> str:
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError('Notes must be text.')

    normalized = value.strip()
    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValidationError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')
    return normalized


def coerce_status(value: Any) -> str:
    try:
        return AppointmentStatus(value).value
    except ValueError as exc:
        allowed = ', '.join(status.value for status in AppointmentStatus)
        raise ValidationError(f'Status must be one of: {allowed}.') from exc


class BookingLedger:
    """Clash-checked create, cancel, reschedule and update of appointments."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFoundError('Appointment not found.')
        return appointment

    def get_doctor(self, doctor_id: Any) -> User:
        if doctor_id is None or not str(doctor_id).strip():
            raise ValidationError('Doctor is required.')

        doctor = self.db.query(User).filter(
            User.id == str(doctor_id).strip(),
            User.role == Role.DOCTOR.value,
        ).first()
        if doctor is None:
            raise NotFoundError('Doctor not found.')
        return doctor

    def list_mine(self, identity: Identity) -> list[Appointment]:
        if identity.role == Role.PATIENT:
            owner_column = Appointment.patient_id
        elif identity.role == Role.DOCTOR:
            owner_column = Appointment.doctor_id
        else:
            raise AuthorizationError('Invalid role.')

        return self.db.query(Appointment).filter(
            owner_column == str(identity.id),
        ).order_by(Appointment.created_at.desc(), Appointment.id.desc()).all()

    def book(
        self,
        identity: Identity,
        doctor_id: Any,
        appointment_date: Any,
        appointment_time: Any,
        reason: Any,
        notes: Any = None,
    ) -> Appointment:
        if not can_book(identity):
            raise AuthorizationError('Only patients can book.')

        target_date = coerce_date(appointment_date)
        target_time = coerce_time(appointment_time)
        normalized_reason = coerce_reason(reason)
        normalized_notes = coerce_notes(notes)
        slot = SlotRequest(
            doctor_id=self.get_doctor(doctor_id).id,
            appointment_date=target_date,
            appointment_time=target_time,
        )

        with self._critical_section(slot.doctor_id):
            if clashes(slot, self._appointments_at(slot)):
                self._log_conflict('book', slot)
                raise SlotConflictError(SLOT_TAKEN_MESSAGE)

            appointment = Appointment(
                patient_id=str(identity.id),
                doctor_id=slot.doctor_id,
                appointment_date=slot.appointment_date,
                appointment_time=slot.appointment_time,
                reason=normalized_reason,
                notes=normalized_notes,
                status=AppointmentStatus.CONFIRMED.value,
            )
            self.db.add(appointment)
            self._commit(appointment, slot)

        logger.info(
            'Booked appointment %s for patient %s with doctor %s on %s at %s',
            appointment.id,
            appointment.patient_id,
            appointment.doctor_id,
            appointment.appointment_date,
            appointment.appointment_time,
        )
        return appointment

    def cancel(self, appointment_id: int, identity: Identity) -> Appointment:
        appointment = self._owned(appointment_id, identity)

        with self._critical_section(appointment.doctor_id):
            self.db.refresh(appointment)

            if appointment.status == AppointmentStatus.CANCELLED.value:
                logger.debug('Appointment %s is already cancelled', appointment.id)
                return appointment
            if not can_transition(appointment.status, AppointmentStatus.CANCELLED.value):
                raise ValidationError(f'A {appointment.status} appointment cannot be cancelled.')

            appointment.status = AppointmentStatus.CANCELLED.value
            self._commit(appointment)

        logger.info('Cancelled appointment %s (by %s %s)', appointment.id, identity.role.value, identity.id)
        return appointment

    def reschedule(self, appointment_id: int, identity: Identity, new_date: Any, new_time: Any) -> Appointment:
        appointment = self._owned(appointment_id, identity)
        target_date = coerce_date(new_date)
        target_time = coerce_time(new_time)

        with self._critical_section(appointment.doctor_id):
            self.db.refresh(appointment)
            if not is_active(appointment.status):
                raise ValidationError('Only pending or confirmed appointments can be rescheduled.')
            self._move(appointment, target_date, target_time, appointment.status)
            self._commit(appointment)

        logger.info(
            'Rescheduled appointment %s to %s at %s',
            appointment.id,
            appointment.appointment_date,
            appointment.appointment_time,
        )
        return appointment

    def update(self, appointment_id: int, identity: Identity, fields: Mapping[str, Any]) -> Appointment:
        unknown = sorted(set(fields).difference(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f'Fields cannot be updated: {", ".join(unknown)}.')

        changes: dict[str, Any] = {}
        if 'status' in fields:
            changes['status'] = coerce_status(fields['status'])
        if 'reason' in fields:
            changes['reason'] = coerce_reason(fields['reason'])
        if 'notes' in fields:
            changes['notes'] = coerce_notes(fields['notes'])
        if 'appointment_date' in fields:
            changes['appointment_date'] = coerce_date(fields['appointment_date'])
        if 'appointment_time' in fields:
            changes['appointment_time'] = coerce_time(fields['appointment_time'])

        appointment = self._owned(appointment_id, identity)

        with self._critical_section(appointment.doctor_id):
            self.db.refresh(appointment)

            new_status = changes.get('status', appointment.status)
            if not can_transition(appointment.status, new_status):
                raise ValidationError(f'Status cannot change from {appointment.status} to {new_status}.')

            self._move(
                appointment,
                changes.get('appointment_date', appointment.appointment_date),
                changes.get('appointment_time', appointment.appointment_time),
                new_status,
            )
            appointment.status = new_status
            if 'reason' in changes:
                appointment.reason = changes['reason']
            if 'notes' in changes:
                appointment.notes = changes['notes']
            self._commit(appointment)

        logger.info('Updated appointment %s fields: %s', appointment.id, ', '.join(sorted(changes)) or 'none')
        return appointment

    def open_slots(
        self,
        doctor_id: Any,
        horizon_days: int = config.SLOT_HORIZON_DAYS,
        step_minutes: int = config.SLOT_STEP_MINUTES,
        today: date | None = None,
    ) -> list[Slot]:
        doctor = self.get_doctor(doctor_id)
        availability = WeeklyAvailability.from_record(doctor.working_days, doctor.start_time, doctor.end_time)
        slots = generate_slots(availability, horizon_days=horizon_days, step_minutes=step_minutes, today=today)

        range_start = slots.today
        range_end = range_start + timedelta(days=horizon_days)
        taken = self.db.query(Appointment.appointment_date, Appointment.appointment_time).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
            Appointment.appointment_date >= range_start,
            Appointment.appointment_date < range_end,
        ).all()

        return list(available_slots(slots, {(taken_date, taken_time) for taken_date, taken_time in taken}))

    def _owned(self, appointment_id: int, identity: Identity) -> Appointment:
        appointment = self.get(appointment_id)
        if not is_owner(identity, appointment):
            raise AuthorizationError('Forbidden.')
        return appointment

    def _appointments_at(self, slot: SlotRequest) -> list[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.doctor_id == slot.doctor_id,
            Appointment.appointment_date == slot.appointment_date,
            Appointment.appointment_time == slot.appointment_time,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        ).all()

    def _move(self, appointment: Appointment, target_date: date, target_time: time, new_status: str) -> None:
        if (target_date, target_time) == (appointment.appointment_date, appointment.appointment_time):
            return
        if not is_active(appointment.status):
            raise ValidationError('Only pending or confirmed appointments can be rescheduled.')

        slot = SlotRequest(
            doctor_id=appointment.doctor_id,
            appointment_date=target_date,
            appointment_time=target_time,
        )
        if new_status != AppointmentStatus.CANCELLED.value and clashes(
            slot,
            self._appointments_at(slot),
            exclude_id=appointment.id,
        ):
            self._log_conflict('reschedule', slot)
            raise SlotConflictError(SLOT_TAKEN_MESSAGE)

        appointment.appointment_date = target_date
        appointment.appointment_time = target_time

    @contextmanager
    def _critical_section(self, doctor_id: str) -> Iterator[None]:
        with _doctor_lock(str(doctor_id)):
            try:
                yield
            except Exception:
                self.db.rollback()
                raise

    def _commit(self, appointment: Appointment, slot: SlotRequest | None = None) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            self._log_conflict('commit', slot or appointment)
            raise SlotConflictError(SLOT_TAKEN_MESSAGE) from exc
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(appointment)

    @staticmethod
    def _log_conflict(operation: str, slot: Any) -> None:
        logger.warning(
            'Rejected %s: doctor %s already has an appointment on %s at %s',
            operation,
            slot.doctor_id,
            slot.appointment_date,
            slot.appointment_time,
        )
