"""Attach the authenticated user to every request."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from apps.api.dependencies.auth import User, resolve_user_from_token

_UNAUTHENTICATED = {"detail": "Invalid authentication credentials"}


class RBACMiddleware(BaseHTTPMiddleware):
    """Resolve the bearer token once; malformed credentials are rejected early."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        token: str | None = None
        authorization = request.headers.get("Authorization")
        if authorization:
            scheme, _, credentials = authorization.partition(" ")
            if scheme.lower() != "bearer" or not credentials.strip():
                return JSONResponse(status_code=401, content=_UNAUTHENTICATED)
            token = credentials.strip()

        try:
            user: User = resolve_user_from_token(token)
        except HTTPException as exc:
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

        request.state.user = user
        return await call_next(request)
