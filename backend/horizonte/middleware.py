"""
Session gate for FastAPI

Runs before routing on every request:
- resolves the session cookie to a SessionUser (or None) on request.state.user
- redirects unauthenticated requests for protected pages to /login
- turns psychologists away from superadmin-only pages
- sends authenticated users from /login to /dashboard
"""

import logging
from typing import Callable
from urllib.parse import quote

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from horizonte.config import SESSION_COOKIE_NAME
from horizonte.services.auth_service import resolve_session_user
from horizonte.services.policy import is_superadmin

logger = logging.getLogger(__name__)

STATIC_PREFIXES = ("/css", "/js", "/icons", "/favicon.ico", "/static")
PROTECTED_PREFIXES = (
    "/dashboard", "/psychologists", "/appointments", "/patients", "/rooms", "/profiles", "/admin",
)
SUPERADMIN_PREFIXES = ("/psychologists", "/admin", "/profiles")
LOGIN_PATH = "/login"
DASHBOARD_PATH = "/dashboard"


def _matches(path: str, prefixes) -> bool:
    return any(path == p or path.startswith(p + "/") for p in prefixes)


def is_static_path(path: str) -> bool:
    return _matches(path, STATIC_PREFIXES)


def _redirect(location: str, status_code: int) -> Response:
    return Response(status_code=status_code, headers={"Location": location})


class SessionGateMiddleware(BaseHTTPMiddleware):
    """
    Path rules, checked in order:
    1. no user + protected path -> 307 /login?from=<path>
    2. non-superadmin + superadmin-only path -> 403, Location /dashboard?error=access_denied
    3. user + /login -> 303 /dashboard

    /api/* never matches a page prefix, so API handlers answer 401/403 themselves.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if is_static_path(path):
            return await call_next(request)

        repos = request.app.state.repositories
        user = await resolve_session_user(repos, request.cookies.get(SESSION_COOKIE_NAME))
        request.state.user = user

        if user is None and _matches(path, PROTECTED_PREFIXES):
            logger.debug(f"Unauthenticated request for {path}, redirecting to login")
            return _redirect(f"{LOGIN_PATH}?from={quote(path, safe='/')}", status.HTTP_307_TEMPORARY_REDIRECT)

        if user is not None and not is_superadmin(user) and _matches(path, SUPERADMIN_PREFIXES):
            logger.info(f"Access denied to {path} for {user.email} ({user.role.value})")
            return _redirect(f"{DASHBOARD_PATH}?error=access_denied", status.HTTP_403_FORBIDDEN)

        if user is not None and path == LOGIN_PATH:
            return _redirect(DASHBOARD_PATH, status.HTTP_303_SEE_OTHER)

        return await call_next(request)
