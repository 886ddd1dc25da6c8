import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from horizonte.api.cors import preflight_response
from horizonte.api.deps import get_repositories, require_user
from horizonte.errors import NotFoundError, UnexpectedError
from horizonte.repositories import Repositories
from horizonte.schemas import Patient, PatientCreate, PatientUpdate, SessionUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/patients", tags=["patients"])


@router.options("")
async def patients_preflight():
    return preflight_response("GET, POST, OPTIONS")


@router.get("")
async def list_patients(
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    patients = await repos.patients.get_all()
    return {"success": True, "patients": [p.to_json() for p in patients]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_patient(
    payload: PatientCreate,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    patient = Patient(**payload.model_dump())
    if not await repos.patients.create(patient):
        raise UnexpectedError("Error creating patient")
    logger.info(f"Patient {patient.id} created by {user.email}")
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"success": True, "patient": patient.to_json()},
        headers={"Access-Control-Allow-Origin": "*"},
    )


@router.get("/search")
async def search_patients(
    q: str = "",
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    profiles = await repos.patients.search(q.strip())
    return {"success": True, "patients": [p.to_json() for p in profiles]}


@router.get("/by-psychologist/{email}")
async def patients_by_psychologist(
    email: str,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    """Patients named in this psychologist's appointments."""
    appointments = await repos.appointments.get_by_psychologist(email)
    ids = {a.patient_id for a in appointments if a.patient_id}
    names = {a.patient_name for a in appointments}
    patients = [
        p for p in await repos.patients.get_all()
        if p.id in ids or p.name in names
    ]
    return {"success": True, "patients": [p.to_json() for p in patients]}


@router.options("/{patient_id}")
async def patient_preflight(patient_id: str):
    return preflight_response("GET, PUT, DELETE, OPTIONS")


@router.get("/{patient_id}")
async def get_patient(
    patient_id: str,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    patient = await repos.patients.get_by_id(patient_id)
    if not patient:
        raise NotFoundError("Patient not found")
    return {"success": True, "patient": patient.to_json()}


@router.put("/{patient_id}")
async def update_patient(
    patient_id: str,
    payload: PatientUpdate,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    result = await repos.patients.update(patient_id, payload.model_dump(exclude_unset=True))
    patient = result.unwrap(not_found="Patient not found")
    logger.info(f"Patient {patient_id} updated by {user.email}")
    return {"success": True, "patient": patient.to_json()}


@router.delete("/{patient_id}")
async def delete_patient(
    patient_id: str,
    repos: Repositories = Depends(get_repositories),
    user: SessionUser = Depends(require_user),
):
    (await repos.patients.delete(patient_id)).unwrap(not_found="Patient not found")
    logger.info(f"Patient {patient_id} deleted by {user.email}")
    return {"success": True, "message": "Patient deleted"}
