from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from medicare_backend.core import config


def _engine_options(database_url: str) -> dict:
    if database_url.startswith('sqlite'):
        return {'connect_args': {'check_same_thread': False}}
    return {'pool_pre_ping': True}


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_user_schema_checked = False
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_user_schema() -> None:
    global _user_schema_checked

    if _user_schema_checked:
        return

    with _schema_lock:
        if _user_schema_checked:
            return

        inspector = inspect(engine)

        if 'users' not in inspector.get_table_names():
            _user_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('users')}
        migration_steps = [
            (
                'working_days',
                f"ALTER TABLE users ADD COLUMN working_days VARCHAR DEFAULT '{config.DEFAULT_WORKING_DAYS}'",
            ),
            ('start_time', f"ALTER TABLE users ADD COLUMN start_time VARCHAR DEFAULT '{config.DEFAULT_START_TIME}'"),
            ('end_time', f"ALTER TABLE users ADD COLUMN end_time VARCHAR DEFAULT '{config.DEFAULT_END_TIME}'"),
            ('specialty', "ALTER TABLE users ADD COLUMN specialty VARCHAR DEFAULT ''"),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(text('CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)'))

        _user_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('notes', "ALTER TABLE appointments ADD COLUMN notes VARCHAR DEFAULT ''"),
            ('created_at', 'ALTER TABLE appointments ADD COLUMN created_at TIMESTAMP'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_created ON appointments(patient_id, created_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_doctor_created ON appointments(doctor_id, created_at)')
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    'ON appointments(doctor_id, appointment_date, appointment_time) '
                    "WHERE status != 'cancelled'"
                )
            )

        _appointment_schema_checked = True
