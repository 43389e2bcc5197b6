from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.utils.exceptions import AppException, InvalidInput
from core.config import settings
from core.logging import get_logger, setup_logging

# Initialize logging
setup_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="AskSQL API",
    version="1.0.0",
    description="Natural-language questions answered from a SQL Server database",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(api_router, prefix="/v1")


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.to_payload(),
            "requestId": exc.request_id,
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    message = "Invalid request body."
    errors = exc.errors()
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"{message} {field}: {errors[0].get('msg')}" if field else f"{message} {errors[0].get('msg')}"
    error = InvalidInput(message, code="INVALID_REQUEST")
    return JSONResponse(
        status_code=error.status_code,
        content={"error": error.to_payload(), "requestId": None},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": {"kind": "INTERNAL_ERROR", "message": "An unexpected error occurred."}},
    )
