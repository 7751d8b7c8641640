"""
    Centralized exception handling for the FastAPI application.
"""
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
import logging

from label_images.responses import build_response

log = logging.getLogger(__name__)

class APIException(Exception):
    """Base class for API exceptions."""
    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.detail)

class ValidationException(APIException):
    """Exception for missing or malformed request fields."""
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)

class InvalidImageException(ValidationException):
    """Exception for invalid image files."""

class AuthException(APIException):
    """Exception for missing or rejected credentials."""
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=401, detail=detail)

class NotFoundException(APIException):
    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)

class ImageNotFoundException(NotFoundException):
    """Exception for when an image is not found."""
    def __init__(self, image_id: str):
        super().__init__(detail=f"Image with ID '{image_id}' not found.")

class ConflictException(APIException):
    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)

class UpstreamException(APIException):
    """Exception for failures of S3, DynamoDB or Cognito."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

class S3Exception(UpstreamException):
    """Exception for S3 failures."""

class DynamoDBException(UpstreamException):
    """Exception for DynamoDB failures."""

class CognitoException(UpstreamException):
    """Exception for Cognito failures."""

async def api_exception_handler(request: Request, exc: APIException):
    """Handles API exceptions."""
    if exc.status_code >= 500:
        log.error("API Exception: %s", exc.detail, exc_info=exc)
    else:
        log.info("API Exception %s: %s", exc.status_code, exc.detail)
    return build_response(exc.status_code, exc.detail)

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handles FastAPI HTTP exceptions."""
    log.info("HTTP Exception %s: %s", exc.status_code, exc.detail)
    return build_response(exc.status_code, str(exc.detail))

async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query params are plain 400s."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {location} {first.get('msg', '')}".strip() if location else "Invalid request body"
    else:
        message = "Invalid request"
    log.info("Request validation failed: %s", errors)
    return build_response(400, message)

async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handles all other exceptions."""
    log.error(f"Unhandled Exception: {str(exc)}", exc_info=exc)
    return build_response(500, "An unexpected error occurred.")

def add_exception_handlers(app):
    """Adds exception handlers to the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
