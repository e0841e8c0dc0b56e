"""
Shared FastAPI dependencies and error handlers.

Services are created once at startup and stored on `app.state`; endpoints
reach them through the dependencies below.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from services.heartbeat_ingest import HeartbeatIngestService
from services.request_authenticator import (
    AUTH_FAILED_MESSAGE,
    AuthConfigurationError,
    AuthenticationError,
    RequestAuthenticator,
    RequestContext,
)


def request_target(request: Request) -> str:
    """Path as sent on the wire, query string included."""
    raw_path = request.scope.get("raw_path")
    path = raw_path.split(b"?", 1)[0].decode("latin-1") if raw_path else request.url.path
    query = request.scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


async def require_signed_request(request: Request) -> None:
    """Reject the request unless it carries a valid HMAC signature."""
    authenticator: RequestAuthenticator = request.app.state.authenticator
    body = await request.body()
    context = RequestContext.from_headers(request.method, request_target(request), request.headers, body)
    authenticator.authenticate(context)


def get_ingest_service(request: Request) -> HeartbeatIngestService:
    return request.app.state.ingest_service


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


async def _authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return error_response(401, "Unauthorized", AUTH_FAILED_MESSAGE)


async def _configuration_error_handler(request: Request, exc: AuthConfigurationError) -> JSONResponse:
    return error_response(500, "Internal Server Error", str(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthenticationError, _authentication_error_handler)
    app.add_exception_handler(AuthConfigurationError, _configuration_error_handler)
