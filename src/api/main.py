import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from ..core.logging import setup_logging
from ..core.config import settings
from ..services.errors import ExtractionError
from ..services.extraction import ExtractionOutcome
from .deps import init_extractor
from .routers import health, receipts

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Resolve configuration once; a missing credential is reported here, not per request
    init_extractor(app)
    if app.state.extractor_error is not None:
        logger.error(
            "Receipt extraction is disabled until configuration is fixed",
            error=app.state.extractor_error.message,
        )
    else:
        logger.info(
            "Receipt extraction ready",
            model=app.state.extractor.model,
            pdf_strategy=app.state.extractor.attachment_producer.strategy,
        )
    yield


app = FastAPI(title="Receipt Extraction Service", lifespan=lifespan)


# Add custom exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
    logger.error("Request validation failed", errors=errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"ok": False, "error": "Request body must be a JSON object with string fields", "detail": errors},
    )


# Pipeline errors raised outside ReceiptExtractor.extract (e.g. from dependencies)
@app.exception_handler(ExtractionError)
async def extraction_exception_handler(request: Request, exc: ExtractionError):
    outcome = ExtractionOutcome.from_error(exc)
    return JSONResponse(status_code=outcome.status_code, content=outcome.to_response())


@app.middleware("http")
async def limit_request_body(request: Request, call_next):
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > settings.max_request_bytes:
        logger.warning("Rejected oversized request", content_length=int(content_length))
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={
                "ok": False,
                "error": f"Request body too large (limit {settings.max_request_bytes:,} bytes); upload a smaller file",
            },
        )
    return await call_next(request)


@app.middleware("http")
async def bind_request_id(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    with logger.contextualize(request_id=request_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Configure CORS to allow frontend access
# CORS_ORIGINS can be set in .env as comma-separated list
# Example: CORS_ORIGINS=http://localhost:3000,https://your-frontend.com
allowed_origins = [origin.strip() for origin in settings.cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(receipts.router)
