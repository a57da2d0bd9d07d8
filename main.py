from dotenv import load_dotenv
load_dotenv()

import time
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from api.v1.forms import router as v1_forms_router

# Setup logging
from core.logging_config import setup_logging, get_logger, LogContext
setup_logging()
logger = get_logger(__name__)

from core.settings import settings
from core.exceptions import (
    FormNotFoundError,
    FormSubmissionError,
    NoActiveFormError,
    PersistenceError,
    SchemaIntegrityError,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info_ctx("FormForge API starting up", storage_backend=settings.STORAGE_BACKEND)
    yield
    logger.info("FormForge API shutting down")

app = FastAPI(title="FormForge API", version="1.0.0", lifespan=lifespan)

# Request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

# Logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    request_id = getattr(request.state, "request_id", "unknown")

    # Skip health checks to reduce noise
    if request.url.path == "/health":
        return await call_next(request)

    with LogContext(request_id=request_id, path=request.url.path, method=request.method):
        logger.info(f"Request started: {request.method} {request.url.path}")

        response = await call_next(request)
        duration = round(time.time() - start_time, 3)

        with LogContext(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
            status_code=response.status_code,
            duration=duration
        ):
            if response.status_code >= 500:
                logger.error(f"Request failed: {request.method} {request.url.path} - {response.status_code} in {duration}s")
            elif response.status_code >= 400:
                logger.warning(f"Request client error: {request.method} {request.url.path} - {response.status_code} in {duration}s")
            else:
                logger.info(f"Request completed: {request.method} {request.url.path} - {response.status_code} in {duration}s")

        return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NoActiveFormError)
async def no_active_form_handler(request: Request, exc: NoActiveFormError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(FormNotFoundError)
async def form_not_found_handler(request: Request, exc: FormNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(SchemaIntegrityError)
async def schema_integrity_handler(request: Request, exc: SchemaIntegrityError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "field_id": exc.field_id},
    )


@app.exception_handler(FormSubmissionError)
async def form_submission_handler(request: Request, exc: FormSubmissionError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "errors": exc.errors},
    )


@app.exception_handler(PersistenceError)
async def persistence_handler(request: Request, exc: PersistenceError):
    request_id = getattr(request.state, "request_id", "unknown")
    return JSONResponse(
        status_code=503,
        content={"detail": str(exc), "request_id": request_id},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", "unknown")

    with LogContext(
        request_id=request_id,
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error_message=str(exc)
    ):
        logger.exception("Unhandled exception")

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "request_id": request_id
        }
    )

app.include_router(v1_forms_router, prefix="/api/v1")

@app.get("/health")
async def health():
    return {"status": "healthy", "service": "formforge-api"}
