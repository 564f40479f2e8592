import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Callable, Optional
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from library_backend.config import settings
from library_backend.database import SessionLocal, init_db
from library_backend.routes import auth, book, loan, users
from library_backend.services.catalog import CatalogService
from library_backend.services.identity import IdentityService
from library_backend.services.loans import LoanService
from library_backend.utils.responses import message_response

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log incoming requests."""
    async def dispatch(self, request: Request, call_next):
        has_session = settings.session_cookie_name in request.cookies
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Session: {'Present' if has_session else 'Missing'}")
        response = await call_next(request)
        return response


def create_app(
    session_factory: Optional[sessionmaker] = None,
    clock: Optional[Callable[[], date]] = None,
) -> FastAPI:
    """Build the API with one shared set of services bound to ``session_factory``."""
    factory = session_factory or SessionLocal

    catalog_service = CatalogService(factory)
    identity_service = IdentityService(factory)
    loan_service = LoanService(catalog_service, factory, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create missing tables and repair inventory counters before serving."""
        init_db(factory.kw["bind"])
        if settings.reconcile_on_startup:
            result = loan_service.reconcile_inventory()
            if not result.ok:
                logger.error(f"Startup reconciliation failed: {result.message}")
        yield
        logger.info("Shutting down, releasing database connections...")
        factory.kw["bind"].dispose()

    app = FastAPI(
        title="Library Management API",
        description="Books, users and the loan lifecycle for the library front-end",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.catalog_service = catalog_service
    app.state.identity_service = identity_service
    app.state.loan_service = loan_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Logging middleware (last, to log everything)
    app.add_middleware(LoggingMiddleware)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        response = message_response(exc.status_code, str(exc.detail))
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            field = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
            message = f"Invalid value for {field}" if field else "Invalid request body"
        else:
            message = "Invalid request body"
        return message_response(status.HTTP_400_BAD_REQUEST, message)

    # Include routers
    app.include_router(auth.router)
    app.include_router(book.router)
    app.include_router(loan.router)
    app.include_router(users.router)

    @app.get("/")
    async def root():
        return {"message": "Library Management API", "version": "1.0.0"}

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()


def main():
    import uvicorn
    uvicorn.run(
        "library_backend.main:app",
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
