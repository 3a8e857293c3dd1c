from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicare_backend.auth.dependencies import get_current_identity
from medicare_backend.core import config
from medicare_backend.database import ensure_appointment_schema, ensure_user_schema, get_db
from medicare_backend.models.appointment import Appointment
from medicare_backend.scheduling.availability import format_clock_time, parse_clock_time
from medicare_backend.scheduling.ledger import BookingLedger
from medicare_backend.scheduling.policy import AppointmentStatus, Identity

router = APIRouter(tags=['appointments'])


def _validate_clock_time(value):
    if isinstance(value, str):
        return parse_clock_time(value)
    return value


def _validate_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    doctor_id: str = Field(alias='doctorId')
    appointment_date: date = Field(alias='appointmentDate')
    appointment_time: time = Field(alias='appointmentTime')
    reason: str
    notes: str | None = None

    class Config:
        populate_by_name = True

    @field_validator('doctor_id', 'reason')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Missing fields')
        return normalized

    @field_validator('appointment_time', mode='before')
    @classmethod
    def validate_appointment_time(cls, value):
        return _validate_clock_time(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)


class RescheduleAppointmentRequest(BaseModel):
    appointment_date: date = Field(alias='appointmentDate')
    appointment_time: time = Field(alias='appointmentTime')

    class Config:
        populate_by_name = True

    @field_validator('appointment_time', mode='before')
    @classmethod
    def validate_appointment_time(cls, value):
        return _validate_clock_time(value)


class UpdateAppointmentRequest(BaseModel):
    status: AppointmentStatus | None = None
    appointment_date: date | None = Field(default=None, alias='appointmentDate')
    appointment_time: time | None = Field(default=None, alias='appointmentTime')
    reason: str | None = None
    notes: str | None = None

    class Config:
        populate_by_name = True
        extra = 'forbid'

    @field_validator('appointment_time', mode='before')
    @classmethod
    def validate_appointment_time(cls, value):
        return _validate_clock_time(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)

    def changed_fields(self) -> dict:
        fields = self.model_dump(exclude_unset=True)
        if 'status' in fields and fields['status'] is not None:
            fields['status'] = AppointmentStatus(fields['status']).value
        return fields


class AppointmentResponse(BaseModel):
    id: int
    patient_id: str = Field(alias='patientId')
    doctor_id: str = Field(alias='doctorId')
    appointment_date: date = Field(alias='appointmentDate')
    appointment_time: str = Field(alias='appointmentTime')
    reason: str
    notes: str = ''
    status: AppointmentStatus
    created_at: datetime | None = Field(default=None, alias='createdAt')
    updated_at: datetime | None = Field(default=None, alias='updatedAt')

    class Config:
        populate_by_name = True


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        appointment_date=appointment.appointment_date,
        appointment_time=format_clock_time(appointment.appointment_time),
        reason=appointment.reason,
        notes=appointment.notes or '',
        status=appointment.status,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


def ensure_database_ready() -> None:
    try:
        ensure_user_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointments = BookingLedger(db).list_mine(identity)
    return [to_appointment_response(appointment) for appointment in appointments]


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: CreateAppointmentRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = BookingLedger(db).book(
        identity,
        doctor_id=data.doctor_id,
        appointment_date=data.appointment_date,
        appointment_time=data.appointment_time,
        reason=data.reason,
        notes=data.notes,
    )
    return to_appointment_response(appointment)


@router.patch('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = BookingLedger(db).cancel(appointment_id, identity)
    return to_appointment_response(appointment)


@router.patch('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = BookingLedger(db).reschedule(
        appointment_id,
        identity,
        new_date=data.appointment_date,
        new_time=data.appointment_time,
    )
    return to_appointment_response(appointment)


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = BookingLedger(db).update(appointment_id, identity, data.changed_fields())
    return to_appointment_response(appointment)
