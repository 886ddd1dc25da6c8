import pytest

from conftest import ADMIN_EMAIL, login, use_session
from horizonte.config import SESSION_COOKIE_NAME
from horizonte.kv import StoreError
from horizonte.middleware import is_static_path

PROTECTED = ["/dashboard", "/psychologists", "/appointments", "/patients", "/rooms", "/profiles", "/admin"]


@pytest.mark.parametrize("path", PROTECTED + ["/appointments/new", "/patients/123/edit"])
def test_unauthenticated_protected_path_redirects_to_login(client, path):
    r = client.get(path, follow_redirects=False)
    assert r.status_code == 307
    assert r.headers["location"] == f"/login?from={path}"
    assert r.content == b""


@pytest.mark.parametrize("path", ["/psychologists", "/admin/profiles", "/profiles/edit/x@y.com"])
def test_psychologist_is_turned_away_from_superadmin_paths(client, psychologist_session, path):
    use_session(client, psychologist_session)
    r = client.get(path, follow_redirects=False)
    assert r.status_code == 403
    assert r.headers["location"] == "/dashboard?error=access_denied"


def test_psychologist_reaches_regular_protected_paths(client, psychologist_session):
    use_session(client, psychologist_session)
    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 200


def test_superadmin_passes_superadmin_paths(client, admin_session):
    # no page is served there, but the gate lets the request through
    r = client.get("/psychologists", follow_redirects=False)
    assert r.status_code == 404


def test_authenticated_login_page_redirects_to_dashboard(client, admin_session):
    r = client.get("/login", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/dashboard"


def test_anonymous_login_page_passes(client):
    r = client.get("/login?from=/rooms")
    assert r.status_code == 200
    assert r.json() == {"success": True, "from": "/rooms"}


@pytest.mark.parametrize("path", ["/static/app.css", "/css/main.css", "/favicon.ico"])
def test_static_paths_bypass_the_gate(client, path):
    r = client.get(path, follow_redirects=False)
    assert r.status_code == 404


def test_valid_session_attaches_user(client, admin_session):
    r = client.get("/api/auth/me")
    assert r.status_code == 200
    user = r.json()["user"]
    assert user["email"] == ADMIN_EMAIL
    assert user["role"] == "superadmin"


def test_unknown_session_means_no_user(client):
    client.cookies.set(SESSION_COOKIE_NAME, "not-a-real-session")
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Not authenticated"}

    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 307


def test_api_paths_are_not_redirected(client):
    r = client.get("/api/patients", follow_redirects=False)
    assert r.status_code == 401
    assert r.json()["success"] is False


def test_store_failure_degrades_to_anonymous(client, app_repos, admin_session, monkeypatch):
    async def broken_get_session(session_id):
        raise StoreError("database is down")

    monkeypatch.setattr(app_repos.sessions, "get_session", broken_get_session)

    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 307
    assert r.headers["location"] == "/login?from=/dashboard"


def test_logout_clears_session(client, app_repos):
    session_id = login(client, ADMIN_EMAIL)

    r = client.post("/api/auth/logout", follow_redirects=False)

    assert r.status_code == 303
    assert r.headers["location"] == "/"
    assert client.portal.call(app_repos.sessions.get_session, session_id) is None

    use_session(client, session_id)
    assert client.get("/api/auth/me").status_code == 401


@pytest.mark.parametrize("path, expected", [
    ("/css/main.css", True),
    ("/favicon.ico", True),
    ("/static", True),
    ("/cssadmin", False),
    ("/jsx", False),
    ("/staticfiles/app.js", False),
])
def test_static_bypass_matches_whole_segments(path, expected):
    assert is_static_path(path) is expected
