"""FastAPI entrypoint for the EduExamine exam-management API."""

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from eduexamine.config import Settings, get_settings
from eduexamine.database import build_engine, create_db_and_tables
from eduexamine.exceptions import ExamPortalError
from eduexamine.routers import auth as auth_router_module
from eduexamine.routers import guest as guest_router_module
from eduexamine.routers import institute as institute_router_module
from eduexamine.routers import student as student_router_module

logger = logging.getLogger(__name__)

API_PREFIX = "/api/auth"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application together with the engine it owns."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="EduExamine API")
    app.state.settings = settings
    app.state.engine = build_engine(settings)

    @app.exception_handler(ExamPortalError)
    async def portal_error_handler(request: Request, exc: ExamPortalError):
        content = {"detail": exc.message}
        if exc.errors:
            content["errors"] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", []) if part != "body"),
                "message": error.get("msg", "Invalid input"),
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Invalid request", "errors": errors},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    # Routers
    app.include_router(auth_router_module.router, prefix=API_PREFIX, tags=["auth"])
    app.include_router(institute_router_module.router, prefix=API_PREFIX, tags=["institute"])
    app.include_router(student_router_module.router, prefix=API_PREFIX, tags=["student"])
    app.include_router(guest_router_module.router, prefix=API_PREFIX, tags=["guest"])

    @app.get("/")
    def health():
        return {"status": "ok"}

    @app.on_event("startup")
    def on_startup():
        """Initialize database schema."""
        create_db_and_tables(app.state.engine)

    @app.on_event("shutdown")
    def on_shutdown():
        app.state.engine.dispose()

    return app


app = create_app()
