"""
Bulk payroll FastAPI application entry point.
"""
import logging
import traceback
import uuid
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.database.engine import create_database_engine
from app.database.init_db import init_database
from app.database.session import create_session_factory
from app.errors import AppError, InternalError, format_error
from app.middleware.auth import IdentityResolver, TokenIdentityResolver
from app.routes.health import router as health_router
from app.routes.payroll_routes import router as payroll_router
from app.services.config_service import ConfigService, config_service
from app.services.dispatch_service import WorkDispatcher, create_dispatcher
from app.services.job_processor import JobProcessor
from app.services.job_repository import JobRepository
from app.services.payments_adapter import create_payments_adapter
from app.services.upload_service import UploadService

# Request ID context variable
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


# Custom logging filter to add request_id
class RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("")
        return True


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s request_id=%(request_id)s"
)

# Filters on handlers see records from every logger
for handler in logging.getLogger().handlers:
    handler.addFilter(RequestIDFilter())

logger = logging.getLogger("app.main")


def create_app(
    config: Optional[ConfigService] = None,
    repository: Optional[JobRepository] = None,
    dispatcher: Optional[WorkDispatcher] = None,
    identity_resolver: Optional[IdentityResolver] = None,
) -> FastAPI:
    """
    Build the application. Collaborators not passed in are opened at startup
    from configuration and closed on shutdown.
    """
    config = config or config_service

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        repo = repository
        if repo is None:
            engine = create_database_engine(config=config)
            init_database(engine)
            repo = JobRepository(create_session_factory(engine))

        disp = dispatcher
        if disp is None:
            processor = JobProcessor(
                repo,
                create_payments_adapter(config),
                batch_size=config.batch_size,
                max_retries=config.max_retries,
            )
            disp = create_dispatcher(config, runner=processor.run)

        app.state.repository = repo
        app.state.dispatcher = disp
        app.state.upload_service = UploadService(repo, disp, config)
        app.state.identity_resolver = identity_resolver or TokenIdentityResolver(
            config.get_setting("AUTH_SECRET_KEY", ""),
            max_age=config.get_int("AUTH_TOKEN_MAX_AGE", 86400),
        )
        logger.info("Application started")

        yield

        if dispatcher is None:
            disp.shutdown(timeout=config.get_float("SHUTDOWN_TIMEOUT", 30.0))
        if engine is not None:
            engine.dispose()
        logger.info("Application stopped")

    app = FastAPI(
        title="Bulk Payroll",
        description="Batch payroll upload, validation and payment processing",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure properly for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)

        request_logger = logging.getLogger("app.request")
        request_logger.info(
            f"Request started method={request.method} url={str(request.url)} client_ip={request.client.host if request.client else 'unknown'}"
        )

        response = await call_next(request)

        request_logger.info(f"Request completed status_code={response.status_code}")
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """Render application errors with their status code."""
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}")
        else:
            logger.warning(f"{exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=format_error(exc))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler for unhandled exceptions."""
        logger.error(f"Unhandled exception: {exc}")
        logger.error(traceback.format_exc())
        error = InternalError("An unexpected error occurred. Please try again later.")
        return JSONResponse(status_code=error.status_code, content=format_error(error))

    # Include routers
    app.include_router(health_router, tags=["health"])
    app.include_router(payroll_router)

    return app


app = create_app()
