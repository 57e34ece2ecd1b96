"""claimflow FastAPI application."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from claimflow.api.assessments import router as assessments_router
from claimflow.api.health import router as health_router
from claimflow.api.requests import router as requests_router
from claimflow.config import settings
from claimflow.engine.errors import (
    AssessmentNotFound,
    InvalidRelation,
    InvalidTransition,
    MissingPrerequisite,
    PartialProvisioning,
    TerminalState,
    Unauthorized,
    VerificationFailed,
    WorkflowError,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[WorkflowError], int] = {
    AssessmentNotFound: 404,
    Unauthorized: 403,
    InvalidTransition: 409,
    TerminalState: 409,
    MissingPrerequisite: 422,
    InvalidRelation: 422,
    PartialProvisioning: 503,
    VerificationFailed: 500,
}

app = FastAPI(
    title="claimflow - Vehicle Damage Claims Workflow",
    description="Moves damage assessments through their processing stages",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    """Map engine errors to HTTP responses."""
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400
    )
    body = {"error": exc.__class__.__name__, "detail": str(exc)}
    if isinstance(exc, MissingPrerequisite):
        body["missing"] = exc.missing
    elif isinstance(exc, PartialProvisioning):
        body["succeeded"] = exc.succeeded
        body["failed"] = exc.failed
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=body)


app.include_router(health_router, tags=["Health"])
app.include_router(requests_router, prefix="/v1", tags=["Requests"])
app.include_router(assessments_router, prefix="/v1", tags=["Assessments"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"service": "claimflow", "version": "0.1.0", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "claimflow.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
