# appointly/main.py
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from appointly.core.config import API_HOST, API_PORT, APP_ENV
from appointly.core.errors import (
    AppointlyError,
    BusinessRuleError,
    ConflictError,
    InvalidStateTransition,
    NotFoundError,
)
from appointly.core.logging_config import configure_logging
from appointly.integrations.notifications import notifier

#Import Routers
from appointly.api.v1 import appointments
from appointly.api.v1 import availability
from appointly.api.v1 import packages
from appointly.api.v1 import waitlist

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Let confirmations that are already on their way finish
    await notifier.drain()


# Create FastAPI app
app = FastAPI(
    title="Appointly API",
    description="Booking core for service businesses: availability, bookings, waitlist and packages",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def status_code_for(exc: AppointlyError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (ConflictError, InvalidStateTransition)):
        return 409
    if isinstance(exc, BusinessRuleError):
        return 422
    return 400


@app.exception_handler(AppointlyError)
async def appointly_error_handler(request: Request, exc: AppointlyError):
    status_code = status_code_for(exc)
    if isinstance(exc, InvalidStateTransition):
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": exc.message, **exc.details},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "detail": "Invalid request",
            "errors": [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
                for error in exc.errors()
            ],
        },
    )


#Include routers
app.include_router(availability.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(waitlist.router, prefix="/api/v1")
app.include_router(packages.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Appointly API",
        "version": "1.0.0",
        "status": "running"
    }

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "environment": APP_ENV
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "appointly.main:app",
        host=API_HOST,
        port=API_PORT,
        reload=True
    )
