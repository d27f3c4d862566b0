"""
Main FastAPI Application
"""
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from contextlib import asynccontextmanager
from typing import Optional
import logging

from finhub.core.clock import Clock, SystemClock
from finhub.core.config import Settings, settings
from finhub.core.database import SessionLocal, init_db
from finhub.core.exceptions import AppError, ErrorKind
from finhub.core.security import TokenManager, TokenRevocationList
from finhub.api.v1 import auth, companies, users, crm, sales, purchases, audit
from finhub.services.permission_service import (
    PermissionCache, PermissionResolver, seed_permissions, seed_roles
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.INTERNAL: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting up...")
    init_db()

    db = SessionLocal()
    try:
        seed_permissions(db)
        seed_roles(db)
    finally:
        db.close()

    logger.info("Database initialized, permissions and roles seeded")

    yield

    # Shutdown
    logger.info("Shutting down...")


def register_exception_handlers(app: FastAPI):

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        status_code = exc.status_code or STATUS_BY_KIND[exc.kind]
        if status_code >= 500:
            logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "detail": "Validation failed",
                "code": "VALIDATION_ERROR",
                "details": jsonable_encoder(exc.errors()),
            }
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning(f"Integrity error on {request.url.path}: {exc.orig}")
        return JSONResponse(
            status_code=409,
            content={"detail": "Duplicate value", "code": "DUPLICATE"}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "An unexpected error occurred", "code": "INTERNAL_ERROR"}
        )


def create_app(clock: Optional[Clock] = None, config: Settings = settings) -> FastAPI:
    """
    Build the application with its own token manager, revocation list and
    permission cache, all reading time from ``clock``.
    """
    app = FastAPI(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        lifespan=lifespan
    )

    clock = clock or SystemClock()
    app.state.clock = clock
    app.state.token_manager = TokenManager(config, clock)
    app.state.revocation_list = TokenRevocationList(clock)
    app.state.permission_resolver = PermissionResolver(
        PermissionCache(config.PERMISSION_CACHE_TTL_SECONDS, clock)
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Health check
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": config.APP_VERSION}

    # Include routers
    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(companies.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(crm.router, prefix="/api/v1")
    app.include_router(sales.router, prefix="/api/v1")
    app.include_router(purchases.router, prefix="/api/v1")
    app.include_router(audit.router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
