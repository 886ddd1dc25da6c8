from typing import Optional

from fastapi import APIRouter, Depends, Query

from horizonte.api.deps import get_dashboard_service, require_user
from horizonte.schemas import SessionUser
from horizonte.services.dashboard import DashboardService
from horizonte.services.policy import is_superadmin

router = APIRouter(tags=["pages"])


@router.get("/dashboard")
async def dashboard(
    error: Optional[str] = None,
    user: SessionUser = Depends(require_user),
    service: DashboardService = Depends(get_dashboard_service),
):
    if is_superadmin(user):
        stats = await service.get_stats()
    else:
        stats = await service.get_psychologist_stats(user.email)
    recent = await service.get_recent_appointments(
        limit=5, psychologist_email=None if is_superadmin(user) else user.email
    )
    return {
        "success": True,
        "user": user.to_json(),
        "stats": stats.to_json(),
        "recentAppointments": [a.to_json() for a in recent],
        "statusCounts": await service.get_appointment_status_counts() if is_superadmin(user) else None,
        "monthlyTrend": await service.get_monthly_trend() if is_superadmin(user) else None,
        "error": error,
    }


@router.get("/login")
async def login_page(from_: Optional[str] = Query(None, alias="from")):
    return {"success": True, "from": from_}
