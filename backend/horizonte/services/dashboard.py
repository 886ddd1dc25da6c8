from __future__ import annotations
import logging
from collections import Counter
from datetime import timedelta
from typing import Dict, List, Optional

from horizonte.kv import StoreError
from horizonte.repositories import Repositories
from horizonte.schemas import Appointment, DashboardStats, RecentAppointment, UserRole, utcnow

logger = logging.getLogger(__name__)

# 8am-6pm, one appointment per hour and room
SLOTS_PER_ROOM_PER_DAY = 10
# a psychologist's own working day
PSYCHOLOGIST_WORK_HOURS = 8


def _today_and_next_week() -> tuple[str, str]:
    now = utcnow()
    return now.date().isoformat(), (now + timedelta(days=7)).date().isoformat()


def _time_counts(appointments: List[Appointment]) -> tuple[int, int]:
    today, next_week = _today_and_next_week()
    today_count = sum(1 for a in appointments if a.appointment_date == today)
    upcoming = sum(1 for a in appointments if today <= a.appointment_date <= next_week)
    return today_count, upcoming


def _utilization(today_count: int, available_rooms: int) -> int:
    return round(today_count / available_rooms * 100) if available_rooms > 0 else 0


class DashboardService:
    """
    Counts over full collection scans. Every read failure degrades to an
    all-zero (or empty) result instead of an error.
    """

    def __init__(self, repos: Repositories):
        self.repos = repos

    async def get_stats(self) -> DashboardStats:
        try:
            users = await self.repos.users.get_all_profiles()
            patients = await self.repos.patients.get_all_profiles()
            appointments = await self.repos.appointments.get_all()
            rooms = await self.repos.rooms.get_all()
        except (StoreError, ValueError) as e:
            logger.error(f"Error getting dashboard stats: {e}")
            return DashboardStats()

        today_count, upcoming = _time_counts(appointments)
        available = sum(1 for r in rooms if r.is_available)
        return DashboardStats(
            total_users=len(users),
            total_psychologists=sum(1 for u in users if u.role == UserRole.PSYCHOLOGIST),
            total_appointments=len(appointments),
            total_patients=len(patients),
            total_rooms=len(rooms),
            available_rooms=available,
            room_utilization=_utilization(today_count, available),
            available_time_slots=max(0, available * SLOTS_PER_ROOM_PER_DAY - today_count),
            today_appointments=today_count,
            upcoming_appointments=upcoming,
        )

    async def get_psychologist_stats(self, email: str) -> DashboardStats:
        """Same shape as get_stats, restricted to one psychologist's appointments and patients."""
        try:
            appointments = await self.repos.appointments.get_by_psychologist(email)
            patients = await self.repos.patients.get_all_profiles()
            rooms = await self.repos.rooms.get_all()
        except (StoreError, ValueError) as e:
            logger.error(f"Error getting psychologist stats for {email}: {e}")
            return DashboardStats()

        names = {a.patient_name for a in appointments}
        today_count, upcoming = _time_counts(appointments)
        available = sum(1 for r in rooms if r.is_available)
        return DashboardStats(
            total_users=1,
            total_psychologists=1,
            total_appointments=len(appointments),
            total_patients=sum(1 for p in patients if p.name in names),
            total_rooms=len(rooms),
            available_rooms=available,
            room_utilization=_utilization(today_count, available),
            available_time_slots=max(0, PSYCHOLOGIST_WORK_HOURS - today_count),
            today_appointments=today_count,
            upcoming_appointments=upcoming,
        )

    async def get_recent_appointments(
        self, limit: int = 10, psychologist_email: Optional[str] = None
    ) -> List[RecentAppointment]:
        try:
            if psychologist_email:
                appointments = await self.repos.appointments.get_by_psychologist(psychologist_email)
            else:
                appointments = await self.repos.appointments.get_all()
        except (StoreError, ValueError) as e:
            logger.error(f"Error getting recent appointments: {e}")
            return []
        newest_first = sorted(
            appointments, key=lambda a: (a.appointment_date, a.appointment_time), reverse=True
        )
        return [
            RecentAppointment.model_validate(a.model_dump())
            for a in newest_first[:limit]
        ]

    async def get_appointment_status_counts(self) -> Dict[str, int]:
        try:
            appointments = await self.repos.appointments.get_all()
        except (StoreError, ValueError) as e:
            logger.error(f"Error getting appointments by status: {e}")
            return {}
        return dict(Counter(a.status.value for a in appointments))

    async def get_monthly_trend(self) -> List[Dict[str, object]]:
        try:
            appointments = await self.repos.appointments.get_all()
        except (StoreError, ValueError) as e:
            logger.error(f"Error getting monthly appointment trend: {e}")
            return []
        counts = Counter(a.appointment_date[:7] for a in appointments if a.appointment_date)
        return [{"month": month, "count": count} for month, count in sorted(counts.items())]
