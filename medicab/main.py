"""Medicab FastAPI Application - Main Entry Point"""
import logging
import os
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from medicab.auth import TokenService, licence_gate
from medicab.config import Settings
from medicab.database import build_engine, build_session_factory, create_tables, get_db
from medicab.errors import error_body
from medicab.routers import (
    admin, certificates, consultations, dashboard, exams, imaging, invoices,
    licence, orientations, patients, prescriptions, users
)

VERSION = "1.0.0"

app_logger = logging.getLogger("medicab.app")
audit_logger = logging.getLogger("medicab.audit")

#---SETUP LOGGING
def configure_logging(settings: Settings):
    """Console + rotating file for the application, plain file for the audit trail"""
    os.makedirs(settings.log_dir, exist_ok=True)

    # building a second app in the same process replaces the handlers
    for logger in (app_logger, audit_logger):
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    # --- Application Logger ---
    app_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s"))

    file_handler = RotatingFileHandler(
        os.path.join(settings.log_dir, "medicab.log"), maxBytes=5_000_000, backupCount=5
    )
    file_handler.setLevel(settings.log_level.upper())
    file_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s"))

    app_logger.addHandler(console_handler)
    app_logger.addHandler(file_handler)

    # --- Audit Logger ---
    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False

    audit_file_handler = logging.FileHandler(os.path.join(settings.log_dir, "audit.log"))
    audit_file_handler.setLevel(logging.INFO)
    audit_file_handler.setFormatter(logging.Formatter("%(asctime)s - %(message)s"))

    audit_logger.addHandler(audit_file_handler)
#----END LOGGING SETUP


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=error_body(exc), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request data", "detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        app_logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Server Error"})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings)

    # Create FastAPI app
    app = FastAPI(
        title="Medicab API",
        description="Gastroenterology clinic management backend",
        version=VERSION
    )

    engine = build_engine(settings.database_url)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.tokens = TokenService(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        lifetime=timedelta(hours=settings.access_token_expire_hours),
    )

    # Enable CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Public routes: licence activation, health and login
    app.include_router(licence.router)

    @app.get("/health")
    def health_check(db: Session = Depends(get_db)):
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            app_logger.error(f"Health check failed: {e}")
            return JSONResponse(
                status_code=503,
                content={"status": "ERROR", "database": "unhealthy", "timestamp": timestamp, "version": VERSION},
            )
        return {"status": "OK", "database": "healthy", "timestamp": timestamp, "version": VERSION}

    app.include_router(users.router)

    # Everything below requires a current licence (admins are always let through)
    licensed = [Depends(licence_gate)]
    for router in (
        patients.router,
        consultations.router,
        prescriptions.router,
        invoices.router,
        certificates.router,
        orientations.router,
        exams.router,
        imaging.router,
        dashboard.router,
        admin.router,
    ):
        app.include_router(router, dependencies=licensed)

    # Create database tables on startup
    @app.on_event("startup")
    def startup_event():
        create_tables(engine)
        app_logger.info(f"Medicab API {VERSION} started")

    @app.on_event("shutdown")
    def shutdown_event():
        engine.dispose()

    return app


def __getattr__(name):
    # `uvicorn medicab.main:app` builds the application on first access, so
    # importing create_app does not require the environment to be configured
    if name == "app":
        application = create_app()
        globals()["app"] = application
        return application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
