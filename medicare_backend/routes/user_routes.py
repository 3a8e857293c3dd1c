from datetime import date

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicare_backend.auth.dependencies import get_current_identity
from medicare_backend.core import config
from medicare_backend.core.errors import AuthorizationError, NotFoundError
from medicare_backend.database import get_db
from medicare_backend.models.user import User
from medicare_backend.routes.appointment_routes import ensure_database_ready
from medicare_backend.scheduling.availability import WeeklyAvailability
from medicare_backend.scheduling.ledger import BookingLedger
from medicare_backend.scheduling.policy import Identity, Role

router = APIRouter(tags=['users'])

MIN_SLOT_STEP_MINUTES = 5
MAX_SLOT_STEP_MINUTES = 240


class UserResponse(BaseModel):
    id: str
    email: str
    role: Role
    first_name: str = Field(default='', alias='firstName')
    last_name: str = Field(default='', alias='lastName')

    class Config:
        populate_by_name = True


class DoctorResponse(UserResponse):
    specialty: str = ''
    working_days: str = Field(default='', alias='workingDays')
    start_time: str = Field(alias='startTime')
    end_time: str = Field(alias='endTime')


class AvailabilityRequest(BaseModel):
    working_days: list[str] | str = Field(alias='workingDays')
    start_time: str = Field(alias='startTime')
    end_time: str = Field(alias='endTime')

    class Config:
        populate_by_name = True


class SlotResponse(BaseModel):
    date: date
    time: str


def to_user_response(user: User) -> UserResponse:
    if user.role == Role.DOCTOR.value:
        return DoctorResponse(
            id=user.id,
            email=user.email,
            role=user.role,
            first_name=user.first_name or '',
            last_name=user.last_name or '',
            specialty=user.specialty or '',
            working_days=user.working_days or '',
            start_time=user.start_time or config.DEFAULT_START_TIME,
            end_time=user.end_time or config.DEFAULT_END_TIME,
        )

    return UserResponse(
        id=user.id,
        email=user.email,
        role=user.role,
        first_name=user.first_name or '',
        last_name=user.last_name or '',
    )


@router.get('/doctors', response_model=list[DoctorResponse])
def list_doctors(db: Session = Depends(get_db)):
    ensure_database_ready()

    doctors = db.query(User).filter(
        User.role == Role.DOCTOR.value,
    ).order_by(User.created_at.desc(), User.email.asc()).all()

    return [to_user_response(doctor) for doctor in doctors]


@router.get('/me', response_model=DoctorResponse | UserResponse)
def read_current_user(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    user = db.get(User, identity.id)
    if user is None:
        raise NotFoundError('User not found.')
    return to_user_response(user)


@router.put('/me/availability', response_model=DoctorResponse, status_code=status.HTTP_200_OK)
def update_my_availability(
    data: AvailabilityRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    if identity.role != Role.DOCTOR:
        raise AuthorizationError('Only doctors can publish availability.')

    availability = WeeklyAvailability.from_record(data.working_days, data.start_time, data.end_time)

    ensure_database_ready()

    doctor = db.get(User, identity.id)
    if doctor is None or doctor.role != Role.DOCTOR.value:
        raise NotFoundError('Doctor not found.')

    record = availability.to_record()
    doctor.working_days = record['working_days']
    doctor.start_time = record['start_time']
    doctor.end_time = record['end_time']
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(doctor)

    return to_user_response(doctor)


@router.get('/doctors/{doctor_id}/slots', response_model=list[SlotResponse])
def list_open_slots(
    doctor_id: str,
    days: int = Query(default=config.SLOT_HORIZON_DAYS, ge=1, le=config.MAX_SLOT_HORIZON_DAYS),
    step: int = Query(default=config.SLOT_STEP_MINUTES, ge=MIN_SLOT_STEP_MINUTES, le=MAX_SLOT_STEP_MINUTES),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    slots = BookingLedger(db).open_slots(doctor_id, horizon_days=days, step_minutes=step)
    return [SlotResponse(**slot.as_wire()) for slot in slots]
