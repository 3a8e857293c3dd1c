"""User model definitions."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, String, func

from medicare_backend.core import config
from medicare_backend.database import Base


def _new_user_id() -> str:
    return uuid4().hex


class User(Base):
    """Represents a patient or doctor account and, for doctors, their weekly availability."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_user_id)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, nullable=False, index=True)  # patient/doctor
    first_name = Column(String, default="")
    last_name = Column(String, default="")
    specialty = Column(String, default="")

    working_days = Column(String, default=config.DEFAULT_WORKING_DAYS)
    start_time = Column(String, default=config.DEFAULT_START_TIME)
    end_time = Column(String, default=config.DEFAULT_END_TIME)

    created_at = Column(DateTime, server_default=func.now())
