import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.academic_years.router import router as academic_years_router
from app.api.v1.assignments.router import router as assignments_router
from app.api.v1.attendance.router import router as attendance_router
from app.api.v1.auth.router import router as auth_router
from app.api.v1.classes.router import router as classes_router
from app.api.v1.enrollment.router import router as enrollment_router
from app.api.v1.enrollment.router import students_router
from app.api.v1.exams.router import router as exams_router
from app.api.v1.expenses.router import router as expenses_router
from app.api.v1.payments.router import router as payments_router
from app.api.v1.reports.router import router as reports_router
from app.api.v1.school.router import router as school_router
from app.api.v1.sections.router import router as sections_router
from app.api.v1.staff_attendance.router import router as staff_attendance_router
from app.api.v1.sub_roles.router import router as sub_roles_router
from app.api.v1.subjects.router import router as subjects_router
from app.core.config import settings
from app.db.init_db import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db(create=settings.auto_create_tables)
    yield


def _validation_errors(exc: RequestValidationError) -> list:
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return errors


def create_app() -> FastAPI:
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Campus School Management", lifespan=lifespan)

    # CORS: origins come from CORS_ORIGINS (comma separated)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Invalid input", "errors": _validation_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Internal server error"},
        )

    # Routers
    app.include_router(auth_router)
    app.include_router(school_router)
    app.include_router(academic_years_router)
    app.include_router(classes_router)
    app.include_router(sections_router)
    app.include_router(subjects_router)
    app.include_router(sub_roles_router)
    app.include_router(attendance_router)
    app.include_router(staff_attendance_router)
    app.include_router(assignments_router)
    app.include_router(exams_router)
    app.include_router(enrollment_router)
    app.include_router(students_router)
    app.include_router(reports_router)
    app.include_router(expenses_router)
    app.include_router(payments_router)

    return app


app = create_app()
