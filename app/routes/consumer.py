"""
Consumer pages: request form, request status with offers, history and notifications.
"""
import html
import logging

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError

from app.auth_utils import guard_page
from app.guard import login_target
from app.layout import esc, format_clp, format_dt, render_page, status_label
from app.routes.requests_api import RequestInput, first_error_message
from app.security import attach_csrf_cookie, issue_csrf_token, validate_csrf, allow_request
from core.database import (
    AMOUNT_OPTIONS,
    OfferError,
    accept_offer,
    create_water_request,
    get_notifications_for_user,
    get_offers_for_request,
    get_request,
    get_requests_for_consumer,
    mark_notifications_read,
)

router = APIRouter()

log = logging.getLogger("consumer")

ACCEPT_ERRORS = {
    "EXPIRED": "That offer has expired. Please choose another one.",
    "NOT_ACTIVE": "That offer is no longer available.",
    "REQUEST_CLOSED": "This request already has an accepted offer.",
    "NOT_FOUND": "Offer not found.",
    "FORBIDDEN": "This request belongs to another account.",
}


def _request_form(csrf_token: str, user: dict | None, error: str = "", values: dict | None = None) -> str:
    values = values or {}
    if user:
        values.setdefault("name", user.get("name") or "")
        values.setdefault("email", user.get("email") or "")
        values.setdefault("phone", user.get("phone") or "")

    def v(key: str) -> str:
        return html.escape(str(values.get(key) or ""), quote=True)

    amount_options = "".join(
        f'<option value="{litres}"{" selected" if str(litres) == values.get("amount") else ""}>'
        f"{litres} L ({format_clp(price)})</option>"
        for litres, price in AMOUNT_OPTIONS.items()
    )
    error_html = f'<p class="error">{html.escape(error)}</p>' if error else ""
    return f"""
    <div class="card">
      {error_html}
      <form method="post" action="/request">
        <label>Name</label>
        <input type="text" name="name" required maxlength="100" value="{v('name')}" />
        <label>Phone</label>
        <input type="text" name="phone" required placeholder="+56912345678" value="{v('phone')}" />
        <label>Email (optional)</label>
        <input type="email" name="email" maxlength="100" value="{v('email')}" />
        <label>Address</label>
        <input type="text" name="address" required maxlength="200" value="{v('address')}" />
        <label>Instructions for the driver</label>
        <textarea name="special_instructions" required maxlength="500">{v('special_instructions')}</textarea>
        <label>Amount</label>
        <select name="amount">{amount_options}</select>
        <label><input type="checkbox" name="is_urgent" value="1" /> Urgent delivery</label>
        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit">Send request</button>
      </form>
    </div>
    """


@router.get("/request", response_class=HTMLResponse)
def request_form(request: Request):
    user, redirect = guard_page(request)
    if redirect:
        return redirect
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    resp = render_page("Request water", _request_form(csrf_token, user), user=user)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/request", response_class=HTMLResponse)
def submit_request_form(
    request: Request,
    name: str = Form(""),
    phone: str = Form(""),
    email: str = Form(""),
    address: str = Form(""),
    special_instructions: str = Form(""),
    amount: str = Form("1000"),
    is_urgent: str = Form(""),
    csrf_token: str = Form(""),
):
    user, redirect = guard_page(request)
    if redirect:
        return redirect

    ip = request.client.host if request and request.client else "unknown"
    if not allow_request(f"request_form:{ip}", limit=10, window_seconds=600):
        return HTMLResponse("Too many requests. Please try again later.", status_code=429)
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    values = {
        "name": name.strip(),
        "phone": phone.strip(),
        "email": email,
        "address": address.strip(),
        "special_instructions": special_instructions.strip(),
        "amount": amount,
        "is_urgent": bool(is_urgent),
    }
    try:
        data = RequestInput.model_validate(values)
    except ValidationError as exc:
        body = _request_form(request.cookies.get("csrf_token", ""), user, first_error_message(exc), values)
        return render_page("Request water", body, user=user, status_code=400)

    created = create_water_request(
        address=data.address,
        amount=int(data.amount),
        guest_name=data.name,
        guest_phone=data.phone,
        guest_email=data.email,
        special_instructions=data.special_instructions,
        is_urgent=data.is_urgent,
        consumer_id=user["id"] if user else None,
    )
    log.info("Water request created", extra={"request_id": created["id"], "guest": user is None})
    if user:
        return RedirectResponse(url=f"/request/{created['id']}", status_code=303)
    return RedirectResponse(url=f"/track/{created['tracking_token']}", status_code=303)


def _load_own_request(request: Request, request_id: int):
    """Returns (user, water_request, response); response is set when the caller must stop."""
    user, redirect = guard_page(request)
    if redirect:
        return user, None, redirect
    if not user:
        return None, None, RedirectResponse(url=login_target(request.url.path, "consumer"), status_code=303)
    req = get_request(request_id)
    if not req or req.get("consumer_id") != user["id"]:
        return user, None, render_page("Not found", '<div class="card"><p>Request not found.</p></div>', user=user, status_code=404)
    return user, req, None


@router.get("/request/{request_id}", response_class=HTMLResponse)
def request_status(request_id: int, request: Request, error: str = ""):
    user, req, stop = _load_own_request(request, request_id)
    if stop:
        return stop

    offers = get_offers_for_request(request_id)
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    can_accept = req.get("status") == "pending"

    rows = ""
    for o in offers:
        action = ""
        if can_accept and o.get("status") == "active":
            action = f"""
            <form method="post" action="/request/{request_id}/offers/{o['id']}/accept" style="margin:0">
              <input type="hidden" name="csrf_token" value="{csrf_token}" />
              <button type="submit" style="margin-top:0">Accept</button>
            </form>
            """
        rows += f"""
        <tr>
          <td>{esc(o.get('provider_name') or 'Supplier')}</td>
          <td>{format_clp(o.get('price'))}</td>
          <td>{esc(o.get('delivery_window') or '')}</td>
          <td>{status_label(o.get('status'))}</td>
          <td>{format_dt(o.get('expires_at'))}</td>
          <td>{action}</td>
        </tr>
        """
    if not rows:
        rows = '<tr><td colspan="6">No offers yet. Suppliers nearby have been notified.</td></tr>'

    error_html = f'<p class="error">{ACCEPT_ERRORS[error]}</p>' if error in ACCEPT_ERRORS else ""
    body = f"""
    <div class="card">
      {error_html}
      <h2>Request #{req['id']}</h2>
      <p><strong>Status:</strong> {status_label(req.get('status'))}</p>
      <p><strong>Amount:</strong> {req.get('amount')} L &middot; <strong>Address:</strong> {esc(req.get('address'))}</p>
      <p class="muted">Created {format_dt(req.get('created_at'))}</p>
    </div>
    <div class="card">
      <h3>Offers</h3>
      <table>
        <thead><tr><th>Supplier</th><th>Price</th><th>Window</th><th>Status</th><th>Expires</th><th></th></tr></thead>
        <tbody>{rows}</tbody>
      </table>
    </div>
    """
    resp = render_page("Your request", body, user=user)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/request/{request_id}/offers/{offer_id}/accept")
def accept_offer_route(request_id: int, offer_id: int, request: Request, csrf_token: str = Form("")):
    user, _req, stop = _load_own_request(request, request_id)
    if stop:
        return stop
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    try:
        accept_offer(offer_id=offer_id, request_id=request_id, consumer_id=user["id"])
    except OfferError as exc:
        log.info("Offer acceptance rejected", extra={"offer_id": offer_id, "code": exc.code})
        return RedirectResponse(url=f"/request/{request_id}?error={exc.code}", status_code=303)

    log.info("Offer accepted", extra={"offer_id": offer_id, "request_id": request_id})
    return RedirectResponse(url=f"/request/{request_id}", status_code=303)


@router.get("/history", response_class=HTMLResponse)
def history(request: Request):
    user, redirect = guard_page(request)
    if redirect:
        return redirect

    rows = "".join(
        f"""
        <tr>
          <td><a href="/request/{r['id']}">#{r['id']}</a></td>
          <td>{r.get('amount')} L</td>
          <td>{esc(r.get('address'))}</td>
          <td>{status_label(r.get('status'))}</td>
          <td>{format_dt(r.get('created_at'))}</td>
        </tr>
        """
        for r in get_requests_for_consumer(user["id"])
    ) or '<tr><td colspan="5">No requests yet. <a href="/request">Request water</a>.</td></tr>'

    body = f"""
    <div class="card">
      <h2>My requests</h2>
      <table>
        <thead><tr><th>Request</th><th>Amount</th><th>Address</th><th>Status</th><th>Created</th></tr></thead>
        <tbody>{rows}</tbody>
      </table>
    </div>
    """
    return render_page("My requests", body, user=user)


def render_notifications(notifications: list) -> str:
    if not notifications:
        return '<p class="muted">No notifications.</p>'
    items = "".join(
        f"""
        <li{' style="font-weight:600"' if not n.get('read') else ''}>
          {esc(n.get('title'))}: {esc(n.get('message'))}
          <span class="muted">{format_dt(n.get('created_at'))}</span>
        </li>
        """
        for n in notifications
    )
    return f"<ul>{items}</ul>"


@router.get("/notifications", response_class=HTMLResponse)
def notifications(request: Request):
    user, redirect = guard_page(request)
    if redirect:
        return redirect

    items = get_notifications_for_user(user["id"])
    mark_notifications_read(user["id"])
    body = f"""
    <div class="card">
      <h2>Notifications</h2>
      {render_notifications(items)}
    </div>
    """
    return render_page("Notifications", body, user=user)
