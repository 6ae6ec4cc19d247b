import html
import logging
import re

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import clear_session_cookie, get_current_user, set_session_cookie
from app.guard import Allow, authorize, home_route_for
from app.layout import render_page
from app.security import (
    attach_csrf_cookie,
    issue_csrf_token,
    validate_csrf,
    allow_request,
    allow_request_with_remaining,
)
from core.database import (
    create_session,
    create_user,
    delete_session,
    get_user_by_email,
    verify_password,
)

router = APIRouter()

log = logging.getLogger("auth")

EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")
SIGNUP_ROLES = ("consumer", "supplier")


def safe_return_to(value: str | None) -> str | None:
    """Only same-site relative paths are followed after login."""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return None
    return value


def _post_login_target(role: str, return_to: str | None) -> str:
    target = safe_return_to(return_to)
    if target and isinstance(authorize(target, role), Allow):
        return target
    return home_route_for(role)


def _login_form(action: str, csrf_token: str, return_to: str = "", email: str = "", error: str = "") -> str:
    error_html = f'<p class="error">{html.escape(error)}</p>' if error else ""
    return f"""
    <div class="card">
      {error_html}
      <form method="post" action="{action}">
        <label>Email</label>
        <input type="email" name="email" required maxlength="100" value="{html.escape(email, quote=True)}" />
        <label>Password</label>
        <input type="password" name="password" required maxlength="64" />
        <input type="hidden" name="return_to" value="{html.escape(return_to, quote=True)}" />
        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit">Login</button>
      </form>
      <p class="muted">No account yet? <a href="/signup">Sign up</a></p>
    </div>
    """


def _start_session(user: dict, target: str) -> RedirectResponse:
    token = create_session(user["id"])
    response = RedirectResponse(url=target, status_code=303)
    set_session_cookie(response, token, role=user.get("role"))
    return response


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request, returnTo: str = ""):
    user, _ = get_current_user(request)
    if user:
        return RedirectResponse(url=home_route_for(user.get("role")), status_code=303)
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    resp = render_page("Login", _login_form("/login", csrf_token, return_to=returnTo), user=None)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/login", response_class=HTMLResponse)
def login(
    request: Request,
    email: str = Form(..., max_length=100),
    password: str = Form(..., max_length=64),
    return_to: str = Form(""),
    csrf_token: str = Form(""),
):
    ip = request.client.host if request and request.client else "unknown"
    allowed, remaining = allow_request_with_remaining(f"login:{ip}", limit=10, window_seconds=300)
    if not allowed:
        return HTMLResponse("Too many login attempts. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    user = get_user_by_email(email)
    if not user or not user.get("active") or not verify_password(password, user["password_hash"]):
        body = _login_form(
            "/login",
            request.cookies.get("csrf_token", ""),
            return_to=return_to,
            email=email,
            error=f"Incorrect email or password. Attempts left: {remaining}",
        )
        return render_page("Login", body, user=None, status_code=401)

    if user.get("role") == "admin":
        # Admins sign in through their own entry point.
        return RedirectResponse(url="/admin/login", status_code=303)

    log.info("User logged in", extra={"user_id": user["id"], "role": user.get("role")})
    return _start_session(user, _post_login_target(user["role"], return_to))


@router.get("/admin/login", response_class=HTMLResponse)
def admin_login_form(request: Request, returnTo: str = ""):
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    body = _login_form("/admin/login", csrf_token, return_to=returnTo)
    resp = render_page("Admin login", body, user=None)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/admin/login", response_class=HTMLResponse)
def admin_login(
    request: Request,
    email: str = Form(..., max_length=100),
    password: str = Form(..., max_length=64),
    return_to: str = Form(""),
    csrf_token: str = Form(""),
):
    ip = request.client.host if request and request.client else "unknown"
    if not allow_request(f"admin_login:{ip}", limit=5, window_seconds=300):
        return HTMLResponse("Too many login attempts. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    user = get_user_by_email(email)
    if not user or not user.get("active") or not verify_password(password, user["password_hash"]):
        body = _login_form(
            "/admin/login",
            request.cookies.get("csrf_token", ""),
            return_to=return_to,
            email=email,
            error="Incorrect email or password.",
        )
        return render_page("Admin login", body, user=None, status_code=401)

    if user.get("role") != "admin":
        log.info("Non-admin attempted admin login", extra={"user_id": user["id"]})
        return RedirectResponse(url="/admin/not-authorized", status_code=303)

    return _start_session(user, _post_login_target("admin", return_to))


@router.get("/admin/not-authorized", response_class=HTMLResponse)
def admin_not_authorized(request: Request):
    body = """
    <div class="card">
      <h2>Not authorized</h2>
      <p>This account does not have access to the admin panel.</p>
      <p><a href="/">Back to home</a></p>
    </div>
    """
    return render_page("Not authorized", body, user=None, status_code=403)


def _signup_form(csrf_token: str, role: str = "consumer", email: str = "", name: str = "", error: str = "") -> str:
    error_html = f'<p class="error">{html.escape(error)}</p>' if error else ""
    options = "".join(
        f'<option value="{r}"{" selected" if r == role else ""}>{r.title()}</option>' for r in SIGNUP_ROLES
    )
    return f"""
    <div class="card">
      {error_html}
      <form method="post" action="/signup">
        <label>Name</label>
        <input type="text" name="name" required maxlength="100" value="{html.escape(name, quote=True)}" />
        <label>Email</label>
        <input type="email" name="email" required maxlength="100" value="{html.escape(email, quote=True)}" />
        <label>Phone</label>
        <input type="text" name="phone" maxlength="20" placeholder="+56912345678" />
        <label>Password</label>
        <input type="password" name="password" required maxlength="64" />
        <label>I am a</label>
        <select name="role">{options}</select>
        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit">Create account</button>
      </form>
    </div>
    """


def _is_valid_password(pw: str) -> bool:
    return 8 <= len(pw or "") <= 64 and bool(re.search(r"[A-Za-z]", pw) and re.search(r"\d", pw))


@router.get("/signup", response_class=HTMLResponse)
def signup_form(request: Request, role: str = "consumer"):
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    role = role if role in SIGNUP_ROLES else "consumer"
    resp = render_page("Sign up", _signup_form(csrf_token, role=role), user=None)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/signup", response_class=HTMLResponse)
def signup(
    request: Request,
    name: str = Form(..., max_length=100),
    email: str = Form(..., max_length=100),
    password: str = Form(..., max_length=64),
    phone: str = Form("", max_length=20),
    role: str = Form("consumer"),
    csrf_token: str = Form(""),
):
    ip = request.client.host if request and request.client else "unknown"
    if not allow_request(f"signup:{ip}", limit=5, window_seconds=3600):
        return HTMLResponse("Too many sign-up attempts. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    cookie_token = request.cookies.get("csrf_token", "")
    role = role if role in SIGNUP_ROLES else "consumer"
    email = (email or "").strip().lower()

    error = ""
    if not EMAIL_RE.fullmatch(email):
        error = "Enter a valid email address."
    elif not _is_valid_password(password):
        error = "Password must be 8-64 characters with at least one letter and one number."
    elif get_user_by_email(email):
        error = "An account with that email already exists."
    if error:
        body = _signup_form(cookie_token, role=role, email=email, name=name, error=error)
        return render_page("Sign up", body, user=None, status_code=400)

    user_id = create_user(email, password, role=role, name=name.strip(), phone=phone.strip() or None)
    log.info("User signed up", extra={"user_id": user_id, "role": role})
    return _start_session({"id": user_id, "role": role}, home_route_for(role))


@router.get("/logout")
def logout(request: Request):
    _, token = get_current_user(request)
    if token:
        delete_session(token)
    response = RedirectResponse(url="/", status_code=303)
    clear_session_cookie(response)
    return response
