import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from medicare_backend.core import config
from medicare_backend.core.errors import SchedulingError
from medicare_backend.database import Base, engine, ensure_appointment_schema, ensure_user_schema
from medicare_backend.models import appointment, user  # noqa: F401
from medicare_backend.routes import appointment_routes, user_routes

logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

app = FastAPI(title='Medicare Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return 'Invalid request.'

    first = errors[0]
    location = '.'.join(str(part) for part in first.get('loc', ()) if part != 'body')
    message = first.get('msg', 'Invalid value')
    return f'{location}: {message}' if location else message


@app.exception_handler(SchedulingError)
async def handle_scheduling_error(request: Request, exc: SchedulingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'message': _first_validation_message(exc), 'kind': 'validation_error'},
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={'message': str(exc.detail)},
        headers=getattr(exc, 'headers', None),
    )


@app.exception_handler(SQLAlchemyError)
async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error while handling %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={'message': 'Database unavailable. Verify DATABASE_URL and database credentials.'},
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error while handling %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'message': 'Server error'},
    )


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_user_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/api/health')
def health():
    return {'ok': True}


app.include_router(appointment_routes.router, prefix='/api/appointments')
app.include_router(user_routes.router, prefix='/api/users')
