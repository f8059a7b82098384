from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from goodgrid.config import settings
from goodgrid.errors import (
    AlreadyAssigned, DuplicateSubmission, GatewayUnavailable, InvalidTransition, NotAssignedToReviewer,
    NotEligible, NotFound, PipelineError, TaskUnavailable, TransactionFailed,
)
from goodgrid.logging_setup import configure_logging
from goodgrid.routes.system import router as system_router
from goodgrid.routes.submissions import router as submissions_router
from goodgrid.routes.reviews import router as reviews_router
from goodgrid.routes.rewards import router as rewards_router
import structlog

configure_logging()
log = structlog.get_logger()

ERROR_STATUS: dict[type[PipelineError], int] = {
    NotFound: 404,
    TaskUnavailable: 404,
    DuplicateSubmission: 409,
    AlreadyAssigned: 409,
    InvalidTransition: 409,
    NotEligible: 403,
    NotAssignedToReviewer: 403,
    GatewayUnavailable: 503,
    TransactionFailed: 503,
}

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    yield
    # Shutdown
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} task verification and rewards API",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system_router)
app.include_router(submissions_router)
app.include_router(reviews_router)
app.include_router(rewards_router)

@app.exception_handler(PipelineError)
async def pipeline_error(request: Request, exc: PipelineError):
    status = ERROR_STATUS.get(type(exc), 400)
    if status >= 500:
        log.error("request_failed", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(status_code=status, content={"detail": str(exc), "code": type(exc).__name__})

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
