"""
    Uniform JSON envelope and permissive cross-origin headers.
"""
from typing import Any, Union

from fastapi import Request
from fastapi.responses import JSONResponse

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "OPTIONS, GET, POST, PUT, DELETE",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

def build_response(status_code: int, payload: Union[str, Any]) -> JSONResponse:
    """Wraps a payload into the response envelope. Plain strings become {"message": ...}."""
    content = {"message": payload} if isinstance(payload, str) else payload
    return JSONResponse(status_code=status_code, content=content, headers=CORS_HEADERS)

async def cors_middleware(request: Request, call_next):
    """
        Answers every OPTIONS request as a preflight and stamps the
        cross-origin headers on every other response.
    """
    if request.method == "OPTIONS":
        return build_response(200, "OK")
    response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers.setdefault(name, value)
    return response
