import os
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from medicare_backend.database import Base  # noqa: E402
from medicare_backend.models.appointment import Appointment  # noqa: E402
from medicare_backend.models.user import User  # noqa: E402

_email_sequence = count(1)


def _create_tables(engine) -> None:
    Base.metadata.create_all(bind=engine, tables=[User.__table__, Appointment.__table__])


@pytest.fixture
def appointment_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    _create_tables(engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=[Appointment.__table__, User.__table__])
        engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_engine(
        f'sqlite:///{tmp_path / "ledger.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    _create_tables(engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


def _make_user(db, role: str, **fields) -> User:
    sequence = next(_email_sequence)
    user = User(email=f'{role}{sequence}@example.com', role=role, **fields)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user_factory(appointment_db):
    def make(role: str, **fields) -> User:
        return _make_user(appointment_db, role, **fields)

    return make


@pytest.fixture
def doctor(appointment_db) -> User:
    return _make_user(appointment_db, 'doctor', first_name='Gregory', last_name='House')


@pytest.fixture
def patient(appointment_db) -> User:
    return _make_user(appointment_db, 'patient', first_name='Ada')


@pytest.fixture
def other_patient(appointment_db) -> User:
    return _make_user(appointment_db, 'patient', first_name='Grace')
