import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from horizonte.api.deps import get_repositories, require_superadmin
from horizonte.errors import NotFoundError, ValidationError
from horizonte.repositories import Repositories
from horizonte.schemas import PsychologistCreate, PsychologistUpdate, SessionUser, User, UserRole
from horizonte.services.auth_service import hash_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/psychologists", tags=["psychologists"])


@router.get("")
async def list_psychologists(
    repos: Repositories = Depends(get_repositories),
    admin: SessionUser = Depends(require_superadmin),
):
    profiles = await repos.users.get_users_by_role(UserRole.PSYCHOLOGIST.value)
    return {"success": True, "psychologists": [p.to_json() for p in profiles]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_psychologist(
    payload: PsychologistCreate,
    repos: Repositories = Depends(get_repositories),
    admin: SessionUser = Depends(require_superadmin),
):
    if await repos.users.get_user_by_email(payload.email):
        raise ValidationError("A user with this email already exists")

    user = User(
        id="",
        password_hash=hash_password(payload.password),
        **payload.model_dump(exclude={"password"}),
    )
    if not await repos.users.create(user):
        if await repos.users.get_user_by_email(payload.email):
            raise ValidationError("A user with this email already exists")
        raise ValidationError("Invalid psychologist data")

    logger.info(f"User {user.email} ({user.role.value}) created by {admin.email}")
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"success": True, "psychologist": user.to_profile().to_json()},
    )


@router.get("/{email}")
async def get_psychologist(
    email: str,
    repos: Repositories = Depends(get_repositories),
    admin: SessionUser = Depends(require_superadmin),
):
    user = await repos.users.get_user_by_email(email)
    if not user:
        raise NotFoundError("Psychologist not found")
    return {"success": True, "psychologist": user.to_profile().to_json()}


@router.put("/{email}")
async def update_psychologist(
    email: str,
    payload: PsychologistUpdate,
    repos: Repositories = Depends(get_repositories),
    admin: SessionUser = Depends(require_superadmin),
):
    fields = payload.model_dump(exclude_unset=True)
    password = fields.pop("password", None)
    if password:
        fields["password_hash"] = hash_password(password)

    result = await repos.users.update(email, fields)
    user = result.unwrap(not_found="Psychologist not found", conflict="Error updating psychologist")
    logger.info(f"User {user.email} updated by {admin.email}")
    return {"success": True, "psychologist": user.to_profile().to_json()}


@router.delete("/{email}")
async def delete_psychologist(
    email: str,
    repos: Repositories = Depends(get_repositories),
    admin: SessionUser = Depends(require_superadmin),
):
    result = await repos.users.delete(email)
    result.unwrap(not_found="Psychologist not found", conflict="Error deleting psychologist")
    logger.info(f"User {email} deleted by {admin.email}")
    return {"success": True, "message": "Psychologist deleted"}
