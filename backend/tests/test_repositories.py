import asyncio
from datetime import timedelta

import pytest

from horizonte.db import build_sessionmaker
from horizonte.errors import ConflictError, NotFoundError
from horizonte.kv import KvStore, StoreError
from horizonte.repositories import MutationResult, MutationStatus, build_repositories
from horizonte.schemas import Appointment, Patient, Room, User, UserRole, utcnow


def make_appointment(id="apt-1", **overrides) -> Appointment:
    data = dict(
        id=id,
        patient_name="Ana Pérez",
        psychologist_email="psicologo1@horizonte.com",
        psychologist_name="Dr. Carlos Mendoza",
        appointment_date="2030-01-15",
        appointment_time="10:00",
        room_id="A",
    )
    data.update(overrides)
    return Appointment(**data)


def make_user(email="psicologo1@horizonte.com", role=UserRole.PSYCHOLOGIST, **overrides) -> User:
    data = dict(id="", email=email, role=role, name="Dr. Carlos Mendoza", password_hash="x")
    data.update(overrides)
    return User(**data)


# ---------- MutationResult ----------

def test_mutation_result_truthiness():
    assert MutationResult(MutationStatus.OK)
    assert not MutationResult(MutationStatus.CONFLICT)
    assert not MutationResult(MutationStatus.NOT_FOUND)


def test_mutation_result_unwrap_raises_matching_error():
    with pytest.raises(NotFoundError):
        MutationResult(MutationStatus.NOT_FOUND).unwrap()
    with pytest.raises(ConflictError):
        MutationResult(MutationStatus.CONFLICT).unwrap()


# ---------- patients ----------

async def test_patient_round_trip(repos):
    patient = Patient(name="Ana Pérez", email="ana@mail.com", phone="600111222", gender="female")
    assert await repos.patients.create(patient)
    assert patient.id

    fetched = await repos.patients.get_by_id(patient.id)

    server_fields = {"id", "created_at", "updated_at"}
    assert fetched.model_dump(exclude=server_fields) == patient.model_dump(exclude=server_fields)
    assert fetched.created_at is not None
    assert fetched.updated_at is not None


async def test_patient_without_name_is_rejected(repos):
    assert not await repos.patients.create(Patient(name="   "))
    assert await repos.patients.get_all() == []


async def test_patient_name_index_follows_renames_and_deletes(repos, kv):
    patient = Patient(name="Ana Pérez")
    await repos.patients.create(patient)
    assert [p.id for p in await repos.patients.get_by_name("ana")] == [patient.id]

    assert await repos.patients.update(patient.id, {"name": "Lucía Gómez"})
    assert await repos.patients.get_by_name("ana") == []
    assert [p.id for p in await repos.patients.get_by_name("lucía")] == [patient.id]

    assert await repos.patients.delete(patient.id)
    assert await kv.list(("patients_by_name",)) == []


async def test_patient_update_refreshes_updated_at(repos):
    patient = Patient(name="Ana")
    await repos.patients.create(patient)
    before = (await repos.patients.get_by_id(patient.id)).updated_at

    result = await repos.patients.update(patient.id, {"notes": "primera sesión"})

    assert result.ok
    assert result.value.notes == "primera sesión"
    assert result.value.updated_at > before


async def test_patient_search_and_active(repos):
    await repos.patients.create(Patient(name="Ana Pérez", email="ana@mail.com"))
    await repos.patients.create(Patient(name="Bruno Díaz", phone="600999888", is_active=False))

    assert [p.name for p in await repos.patients.search("ANA@")] == ["Ana Pérez"]
    assert [p.name for p in await repos.patients.search("600999")] == ["Bruno Díaz"]
    assert len(await repos.patients.search("")) == 2
    assert [p.name for p in await repos.patients.get_active()] == ["Ana Pérez"]


async def test_update_missing_patient_reports_not_found(repos):
    result = await repos.patients.update("nope", {"name": "X"})
    assert result.status is MutationStatus.NOT_FOUND
    assert (await repos.patients.delete("nope")).status is MutationStatus.NOT_FOUND


# ---------- rooms ----------

async def test_toggle_availability_twice_restores_value(repos):
    await repos.rooms.create(Room(id="A", name="Sala A"))
    original = (await repos.rooms.get_by_id("A")).is_available

    first = await repos.rooms.toggle_availability("A")
    second = await repos.rooms.toggle_availability("A")

    assert first.value.is_available is not original
    assert second.value.is_available is original
    assert (await repos.rooms.get_by_id("A")).is_available is original


async def test_room_ids_are_unique_and_from_fixed_set(repos):
    assert await repos.rooms.create(Room(id="A", name="Sala A"))
    assert not await repos.rooms.create(Room(id="A", name="Otra sala A"))
    assert not await repos.rooms.create(Room(id="AA", name="Sala doble"))
    assert not await repos.rooms.create(Room(id="a", name="minúscula"))
    assert (await repos.rooms.get_by_id("A")).name == "Sala A"


async def test_room_capacity_must_be_positive(repos):
    assert not await repos.rooms.create(Room(id="B", name="Sala B", capacity=0))
    await repos.rooms.create(Room(id="B", name="Sala B", capacity=2))
    result = await repos.rooms.update("B", {"capacity": -1})
    assert result.status is MutationStatus.INVALID


async def test_rooms_sorted_by_id_and_defaults_only_when_empty(repos):
    assert await repos.rooms.initialize_default_rooms() == 5
    assert [r.id for r in await repos.rooms.get_all()] == ["A", "B", "C", "D", "E"]
    assert await repos.rooms.initialize_default_rooms() == 0


async def test_available_rooms_skip_booked_and_unavailable(repos):
    await repos.rooms.initialize_default_rooms()
    await repos.rooms.update_availability("B", False)
    await repos.appointments.create(make_appointment("apt-1", room_id="A"))
    await repos.appointments.create(make_appointment("apt-2", room_id="C", status="cancelled"))

    rooms = await repos.rooms.get_available_rooms("2030-01-15", "10:00")
    assert [r.id for r in rooms] == ["C", "D", "E"]

    rooms = await repos.rooms.get_available_rooms("2030-01-15", "10:00", exclude_appointment_id="apt-1")
    assert [r.id for r in rooms] == ["A", "C", "D", "E"]


# ---------- appointments ----------

async def test_stale_precondition_loses_exactly_one_update(repos):
    await repos.appointments.create(make_appointment())
    token = await repos.appointments.get_entry("apt-1")

    first = await repos.appointments.update("apt-1", {"notes": "first"}, precondition=token)
    second = await repos.appointments.update("apt-1", {"notes": "second"}, precondition=token)

    assert [first.ok, second.ok].count(True) == 1
    assert second.status is MutationStatus.CONFLICT
    assert (await repos.appointments.get_by_id("apt-1")).notes == "first"


async def test_concurrent_updates_with_same_token_lose_exactly_one(file_engine):
    repos = build_repositories(KvStore(build_sessionmaker(file_engine)))
    await repos.rooms.create(Room(id="A", name="Sala A"))

    for i in range(10):
        token = await repos.rooms.get_entry("A")
        results = await asyncio.gather(
            repos.rooms.update("A", {"description": f"left {i}"}, precondition=token),
            repos.rooms.update("A", {"description": f"right {i}"}, precondition=token),
        )
        statuses = sorted(r.status.value for r in results)
        assert statuses == [MutationStatus.CONFLICT.value, MutationStatus.OK.value]
        winner = next(r for r in results if r.ok)
        assert (await repos.rooms.get_by_id("A")).description == winner.value.description


async def test_stale_precondition_blocks_delete(repos):
    await repos.appointments.create(make_appointment())
    token = await repos.appointments.get_entry("apt-1")
    await repos.appointments.update("apt-1", {"notes": "changed"})

    result = await repos.appointments.delete("apt-1", precondition=token)

    assert result.status is MutationStatus.CONFLICT
    assert await repos.appointments.get_by_id("apt-1") is not None


async def test_update_status_rejects_unknown_value(repos):
    await repos.appointments.create(make_appointment())
    before = await repos.appointments.get_entry("apt-1")

    result = await repos.appointments.update_status("apt-1", "done")

    assert result.status is MutationStatus.INVALID
    after = await repos.appointments.get_entry("apt-1")
    assert after.value == before.value
    assert after.versionstamp == before.versionstamp


async def test_update_status_any_to_any_records_history(repos):
    await repos.appointments.create(make_appointment(status="completed"))

    result = await repos.appointments.update_status("apt-1", "pending", changed_by="admin@horizonte.com")

    assert result.ok
    stored = await repos.appointments.get_by_id("apt-1")
    assert stored.status == "pending"
    assert [h.status for h in stored.status_history] == ["completed", "pending"]
    assert stored.status_history[-1].changed_by == "admin@horizonte.com"


async def test_update_status_missing_appointment(repos):
    result = await repos.appointments.update_status("missing", "completed")
    assert result.status is MutationStatus.NOT_FOUND


async def test_psychologist_index_moves_with_the_appointment(repos):
    await repos.appointments.create(make_appointment())
    assert [a.id for a in await repos.appointments.get_by_psychologist("psicologo1@horizonte.com")] == ["apt-1"]

    await repos.appointments.update("apt-1", {"psychologist_email": "psicologo2@horizonte.com"})

    assert await repos.appointments.get_by_psychologist("psicologo1@horizonte.com") == []
    moved = await repos.appointments.get_by_psychologist("psicologo2@horizonte.com")
    assert [a.id for a in moved] == ["apt-1"]

    await repos.appointments.delete("apt-1")
    assert await repos.appointments.get_by_psychologist("psicologo2@horizonte.com") == []


async def test_appointments_sorted_and_filtered(repos):
    await repos.appointments.create(make_appointment("b", appointment_date="2030-01-16", appointment_time="09:00"))
    await repos.appointments.create(make_appointment("a", appointment_date="2030-01-15", appointment_time="11:00"))
    await repos.appointments.create(make_appointment("c", appointment_date="2030-01-15", appointment_time="08:00", status="completed"))

    assert [a.id for a in await repos.appointments.get_all()] == ["c", "a", "b"]
    assert [a.id for a in await repos.appointments.get_by_date("2030-01-15")] == ["c", "a"]
    assert [a.id for a in await repos.appointments.get_by_status("completed")] == ["c"]


# ---------- users ----------

async def test_user_create_writes_all_indexes(repos, kv):
    user = make_user(email="Psicologo1@Horizonte.com")
    assert await repos.users.create(user)

    assert user.email == "psicologo1@horizonte.com"
    assert (await kv.get(("users", "psicologo1@horizonte.com"))).exists
    assert (await kv.get(("users_by_id", user.id))).exists
    assert (await kv.get(("users_by_role", "psychologist", "psicologo1@horizonte.com"))).value == "psicologo1@horizonte.com"
    assert (await repos.users.get_user_by_id(user.id)).email == user.email
    assert (await repos.users.get_user_by_email("PSICOLOGO1@horizonte.com")).id == user.id


async def test_duplicate_user_email_is_rejected(repos):
    assert await repos.users.create(make_user())
    assert not await repos.users.create(make_user(name="Otro"))
    assert len(await repos.users.get_all()) == 1


@pytest.mark.parametrize("overrides", [
    {"email": "not-an-email"},
    {"name": " "},
    {"dni": "12-34"},
    {"experience_years": 51},
    {"specialty": "Otra"},
])
async def test_invalid_users_are_rejected(repos, overrides):
    assert not await repos.users.create(make_user(**overrides))


async def test_role_change_moves_role_index(repos):
    user = make_user()
    await repos.users.create(user)

    result = await repos.users.update(user.email, {"role": UserRole.SUPERADMIN})

    assert result.ok
    assert await repos.users.get_users_by_role("psychologist") == []
    assert [u.email for u in await repos.users.get_users_by_role("superadmin")] == [user.email]


async def test_user_delete_removes_every_index(repos, kv):
    user = make_user()
    await repos.users.create(user)

    assert await repos.users.delete(user.email)

    assert not (await kv.get(("users", user.email))).exists
    assert not (await kv.get(("users_by_id", user.id))).exists
    assert await kv.list(("users_by_role",)) == []


async def test_profiles_hide_password_and_sort_by_name(repos):
    await repos.users.create(make_user("b@horizonte.com", name="Zoe"))
    await repos.users.create(make_user("a@horizonte.com", name="Alba"))

    profiles = await repos.users.get_all_profiles()

    assert [p.name for p in profiles] == ["Alba", "Zoe"]
    assert all("passwordHash" not in p.to_json() for p in profiles)


# ---------- sessions ----------

async def test_session_lifecycle(repos):
    await repos.sessions.create_session("session-123456789", "ana@horizonte.com")
    session = await repos.sessions.get_session("session-123456789")
    assert session.user_email == "ana@horizonte.com"

    await repos.sessions.delete_session("session-123456789")
    assert await repos.sessions.get_session("session-123456789") is None


async def test_expired_session_is_deleted_on_read(repos, kv):
    record = await repos.sessions.create_session("expired-session", "ana@horizonte.com")
    record.expires_at = utcnow() - timedelta(minutes=1)
    await kv.set(("sessions", "expired-session"), record.to_json())

    assert await repos.sessions.get_session("expired-session") is None
    assert not (await kv.get(("sessions", "expired-session"))).exists


async def test_extend_and_clean_sessions(repos, kv):
    record = await repos.sessions.create_session("old-session", "a@horizonte.com")
    record.expires_at = utcnow() - timedelta(days=1)
    await kv.set(("sessions", "old-session"), record.to_json())
    await repos.sessions.create_session("live-session", "b@horizonte.com")

    assert await repos.sessions.extend_session("live-session", 30)
    assert not await repos.sessions.extend_session("missing-session")

    assert await repos.sessions.clean_expired_sessions() == 1
    active = await repos.sessions.get_active_sessions()
    assert [sid for sid, _ in active] == ["live-session"]
    assert active[0][1].expires_at > utcnow() + timedelta(days=29)


# ---------- store failures ----------

async def test_create_reports_false_on_store_failure(repos, monkeypatch):
    async def broken_commit(op):
        raise StoreError("database is down")

    monkeypatch.setattr(repos.kv, "_commit", broken_commit)

    assert not await repos.patients.create(Patient(name="Ana"))


async def test_read_failures_propagate(repos, monkeypatch):
    async def broken_list(prefix):
        raise StoreError("database is down")

    monkeypatch.setattr(repos.kv, "list", broken_list)

    with pytest.raises(StoreError):
        await repos.patients.get_all()
