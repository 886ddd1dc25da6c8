import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from horizonte.api.deps import get_repositories, require_user
from horizonte.config import IS_PRODUCTION, SESSION_COOKIE_NAME, SESSION_MAX_AGE_SECONDS
from horizonte.errors import AuthenticationError, ValidationError
from horizonte.repositories import Repositories
from horizonte.schemas import LoginRequest, SessionUser
from horizonte.services.auth_service import authenticate, start_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login")
async def login(req: LoginRequest, repos: Repositories = Depends(get_repositories)):
    if not req.email or not req.password:
        raise ValidationError("Email and password are required")

    user = await authenticate(repos, req.email, req.password)
    if not user:
        raise AuthenticationError("Invalid credentials")

    session_id = await start_session(repos, user)
    logger.info(f"User {user.email} logged in")

    response = JSONResponse({
        "success": True,
        "user": {"email": user.email, "name": user.name, "role": user.role.value},
    })
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        max_age=SESSION_MAX_AGE_SECONDS,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="lax",
        path="/",
    )
    return response


@router.api_route("/logout", methods=["GET", "POST"])
async def logout(request: Request, repos: Repositories = Depends(get_repositories)):
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if session_id:
        await repos.sessions.delete_session(session_id)

    response = RedirectResponse(url="/", status_code=status.HTTP_303_SEE_OTHER)
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return response


@router.get("/me")
async def me(user: SessionUser = Depends(require_user)):
    return {"success": True, "user": user.to_json()}
