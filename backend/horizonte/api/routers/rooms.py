import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from horizonte.api.cors import preflight_response
from horizonte.api.deps import get_repositories, require_superadmin, require_user
from horizonte.errors import NotFoundError, UnexpectedError, ValidationError
from horizonte.kv import StoreError
from horizonte.repositories import Repositories
from horizonte.schemas import Room, RoomCreate, RoomUpdate, SessionUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@router.get("")
async def list_rooms(
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    rooms = await repos.rooms.get_all()
    return {"success": True, "rooms": [r.to_json() for r in rooms]}


@router.get("/available")
async def available_rooms(
    date: str = Query(""),
    time: str = Query(""),
    exclude_appointment_id: Optional[str] = Query(None, alias="excludeAppointmentId"),
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    if not date or not time:
        raise ValidationError("date and time are required")
    rooms = await repos.rooms.get_available_rooms(date, time, exclude_appointment_id)
    return {"success": True, "rooms": [r.to_json() for r in rooms]}


@router.options("/create")
async def create_room_preflight():
    return preflight_response("POST, OPTIONS")


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_room(
    payload: RoomCreate,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_superadmin),
):
    if await repos.rooms.get_by_id(payload.id):
        raise ValidationError(f"Room {payload.id} already exists")

    room = Room(**payload.model_dump())
    if not await repos.rooms.create(room):
        # lost the race against another create of the same id
        if await repos.rooms.get_by_id(payload.id):
            raise ValidationError(f"Room {payload.id} already exists")
        raise UnexpectedError("Error creating room")

    logger.info(f"Room {room.id} created by {user.email}")
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"success": True, "room": room.to_json()},
    )


@router.api_route("/{room_id}/update", methods=["PUT", "POST"])
async def update_room(
    room_id: str,
    payload: RoomUpdate,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_superadmin),
):
    result = await repos.rooms.update(room_id, payload.model_dump(exclude_unset=True))
    room = result.unwrap(not_found="Room not found")
    logger.info(f"Room {room_id} updated by {user.email}")
    return {"success": True, "message": "Room updated", "room": room.to_json()}


def _rooms_redirect(query: str) -> RedirectResponse:
    return RedirectResponse(url=f"/rooms?{query}", status_code=status.HTTP_302_FOUND)


@router.api_route("/{room_id}/delete", methods=["DELETE", "POST"])
async def delete_room(
    room_id: str,
    request: Request,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_superadmin),
):
    """
    DELETE answers JSON. An HTML form cannot send DELETE, so a POST with
    `_method=DELETE` is accepted too and answered with redirects to /rooms.
    """
    from_form = request.method == "POST"
    if from_form:
        form = await request.form()
        if str(form.get("_method", "")).upper() != "DELETE":
            raise HTTPException(status_code=status.HTTP_405_METHOD_NOT_ALLOWED, detail="Method not allowed")

    try:
        entry = await repos.rooms.get_entry(room_id)
        if not entry.exists:
            if from_form:
                return _rooms_redirect("error=room_not_found")
            raise NotFoundError("Room not found")

        result = await repos.rooms.delete(room_id, precondition=entry)
    except StoreError as e:
        logger.error(f"Error deleting room {room_id}: {e}")
        if from_form:
            return _rooms_redirect("error=server_error")
        raise

    if not result:
        if from_form:
            return _rooms_redirect("error=delete_failed")
        result.unwrap(not_found="Room not found", conflict="Error deleting room")

    logger.info(f"Room {room_id} deleted by {user.email}")
    if from_form:
        return _rooms_redirect("success=sala_eliminada")
    return {"success": True, "message": "Room deleted"}


@router.options("/{room_id}/toggle-availability")
async def toggle_preflight(room_id: str):
    return preflight_response("POST, OPTIONS")


@router.post("/{room_id}/toggle-availability")
async def toggle_availability(
    room_id: str,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_superadmin),
):
    result = await repos.rooms.toggle_availability(room_id)
    room = result.unwrap(not_found="Room not found", conflict="Error updating availability")
    logger.info(f"Room {room_id} availability set to {room.is_available} by {user.email}")
    return {"success": True, "room": room.to_json(), "isAvailable": room.is_available}
