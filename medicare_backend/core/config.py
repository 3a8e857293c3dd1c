import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./medicare.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

SLOT_HORIZON_DAYS = int(os.getenv("SLOT_HORIZON_DAYS", "30"))
SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "30"))
MAX_SLOT_HORIZON_DAYS = int(os.getenv("MAX_SLOT_HORIZON_DAYS", "90"))

MAX_REASON_LENGTH = int(os.getenv("MAX_REASON_LENGTH", "300"))
MAX_APPOINTMENT_NOTES_LENGTH = int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH", "600"))

DEFAULT_WORKING_DAYS = "monday,tuesday,wednesday,thursday,friday"
DEFAULT_START_TIME = "09:00"
DEFAULT_END_TIME = "17:00"

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SLOT_STEP_MINUTES <= 0:
        raise RuntimeError("SLOT_STEP_MINUTES must be a positive number of minutes.")
    if not 0 < SLOT_HORIZON_DAYS <= MAX_SLOT_HORIZON_DAYS:
        raise RuntimeError("SLOT_HORIZON_DAYS must be between 1 and MAX_SLOT_HORIZON_DAYS.")
