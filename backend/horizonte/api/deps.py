from typing import Optional

from fastapi import Depends, Request

from horizonte.errors import AuthenticationError, AuthorizationError
from horizonte.repositories import Repositories
from horizonte.schemas import SessionUser
from horizonte.services.dashboard import DashboardService
from horizonte.services.policy import is_superadmin


def get_repositories(request: Request) -> Repositories:
    return request.app.state.repositories


def get_dashboard_service(repos: Repositories = Depends(get_repositories)) -> DashboardService:
    return DashboardService(repos)


def get_current_user(request: Request) -> Optional[SessionUser]:
    # set by SessionGateMiddleware
    return getattr(request.state, "user", None)


def require_user(user: Optional[SessionUser] = Depends(get_current_user)) -> SessionUser:
    if user is None:
        raise AuthenticationError("Not authenticated")
    return user


def require_superadmin(user: SessionUser = Depends(require_user)) -> SessionUser:
    if not is_superadmin(user):
        raise AuthorizationError("Insufficient permissions")
    return user
