from fastapi.testclient import TestClient

import app.api as api_module
from app.security import ROLE_COOKIE_NAME, read_role, sign_role

SESSION = "session-token"


def _client(role_cookie=None, session=SESSION):
    cookies = {}
    if session:
        cookies["session_id"] = session
    if role_cookie:
        cookies[ROLE_COOKIE_NAME] = role_cookie
    return TestClient(api_module.app, cookies=cookies)


def test_anonymous_admin_page_redirects_to_admin_login():
    resp = _client(session=None).get("/admin/dashboard", follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "/admin/login?returnTo=%2Fadmin%2Fdashboard"


def test_anonymous_supplier_page_redirects_to_login():
    resp = _client(session=None).get("/provider/", follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "/login?returnTo=%2Fprovider"


def test_consumer_cookie_cannot_reach_other_areas():
    client = _client(sign_role("consumer", SESSION))
    for path in ("/provider", "/admin/orders"):
        resp = client.get(path, follow_redirects=False)
        assert resp.status_code == 303
        assert resp.headers["location"] == "/"


def test_supplier_cookie_is_sent_to_provider_home():
    client = _client(sign_role("supplier", SESSION))
    resp = client.get("/history", follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "/provider"


def test_tampered_role_cookie_counts_as_anonymous():
    forged = "admin." + "0" * 64
    resp = _client(forged).get("/admin/dashboard", follow_redirects=False)
    assert resp.headers["location"].startswith("/admin/login")


def test_role_cookie_bound_to_its_session():
    cookie = sign_role("admin", "other-session")
    assert read_role(cookie, "other-session") == "admin"
    assert read_role(cookie, SESSION) is None

    resp = _client(cookie).get("/admin/dashboard", follow_redirects=False)
    assert resp.headers["location"].startswith("/admin/login")


def test_redirects_still_carry_security_headers():
    resp = _client(session=None).get("/admin", follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers.get("X-Frame-Options") == "SAMEORIGIN"


def test_public_api_paths_pass_through():
    resp = _client(session=None).get("/api/health")
    assert resp.status_code == 200
