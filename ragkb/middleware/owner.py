import uuid
from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

# Define public paths that don't need an owner
PUBLIC_PATHS = ["/", "/docs", "/openapi.json"]

OWNER_HEADER = "X-User-ID"


async def owner_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """
    FastAPI middleware that resolves the owning user of a request.

    Authentication happens upstream; the gateway forwards the authenticated
    user id in the `X-User-ID` header. The parsed UUID is stored in
    `request.state.user_id` and every query downstream is scoped by it.

    Requests to non-public routes without a valid header are rejected with
    401 (missing) or 422 (malformed).
    """
    if request.url.path in PUBLIC_PATHS:
        return await call_next(request)

    user_id = request.headers.get(OWNER_HEADER)
    if not user_id:
        return JSONResponse(
            status_code=401, content={"detail": f"{OWNER_HEADER} header not provided"}
        )

    try:
        request.state.user_id = uuid.UUID(user_id)
    except ValueError:
        return JSONResponse(
            status_code=422,
            content={"detail": f"Invalid {OWNER_HEADER} format (must be a valid UUID)"},
        )

    return await call_next(request)
