import logging

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import guard_page
from app.layout import esc, format_clp, format_dt, render_page, status_label
from app.routes.consumer import render_notifications
from app.security import attach_csrf_cookie, issue_csrf_token, validate_csrf
from core.database import (
    OfferError,
    create_offer,
    get_notifications_for_user,
    get_offers_for_provider,
    get_open_requests,
    offer_validity_minutes,
)

router = APIRouter()

log = logging.getLogger("provider")

OFFER_ERRORS = {
    "DUPLICATE": "You already have an active offer on that request.",
    "REQUEST_CLOSED": "That request is no longer accepting offers.",
    "INVALID_PRICE": "Enter a price greater than zero.",
}


@router.get("/provider", response_class=HTMLResponse)
def provider_dashboard(request: Request, error: str = ""):
    user, redirect = guard_page(request)
    if redirect:
        return redirect

    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    open_requests = get_open_requests()
    my_offers = get_offers_for_provider(user["id"])
    notifications = get_notifications_for_user(user["id"], limit=10)

    request_rows = ""
    for r in open_requests:
        urgent = " 🔥" if r.get("is_urgent") else ""
        request_rows += f"""
        <tr>
          <td>#{r['id']}{urgent}</td>
          <td>{r.get('amount')} L</td>
          <td>{esc(r.get('address'))}</td>
          <td>{format_dt(r.get('created_at'))}</td>
          <td>
            <form method="post" action="/provider/requests/{r['id']}/offer" style="margin:0">
              <input type="number" name="price" min="1" required placeholder="Price (CLP)" />
              <input type="text" name="delivery_window" maxlength="60" placeholder="e.g. today 14:00-16:00" />
              <input type="hidden" name="csrf_token" value="{csrf_token}" />
              <button type="submit" style="margin-top:0.4rem">Send offer</button>
            </form>
          </td>
        </tr>
        """
    if not request_rows:
        request_rows = '<tr><td colspan="5">No open requests right now.</td></tr>'

    offer_rows = "".join(
        f"""
        <tr>
          <td>#{o['request_id']}</td>
          <td>{o.get('amount')} L &middot; {esc(o.get('address'))}</td>
          <td>{format_clp(o.get('price'))}</td>
          <td>{status_label(o.get('status'))}</td>
          <td>{format_dt(o.get('expires_at'))}</td>
        </tr>
        """
        for o in my_offers
    ) or '<tr><td colspan="5">You have not sent any offers yet.</td></tr>'

    error_html = f'<p class="error">{OFFER_ERRORS[error]}</p>' if error in OFFER_ERRORS else ""
    body = f"""
    {error_html}
    <div class="card">
      <h2>Open requests</h2>
      <p class="muted">Offers stay valid for {offer_validity_minutes()} minutes.</p>
      <table>
        <thead><tr><th>Request</th><th>Amount</th><th>Address</th><th>Created</th><th>Your offer</th></tr></thead>
        <tbody>{request_rows}</tbody>
      </table>
    </div>
    <div class="card">
      <h2>My offers</h2>
      <table>
        <thead><tr><th>Request</th><th>Details</th><th>Price</th><th>Status</th><th>Expires</th></tr></thead>
        <tbody>{offer_rows}</tbody>
      </table>
    </div>
    <div class="card">
      <h2>Notifications</h2>
      {render_notifications(notifications)}
    </div>
    """
    resp = render_page("Provider dashboard", body, user=user)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/provider/requests/{request_id}/offer")
def submit_offer(
    request_id: int,
    request: Request,
    price: int = Form(0),
    delivery_window: str = Form("", max_length=60),
    message: str = Form("", max_length=300),
    csrf_token: str = Form(""),
):
    user, redirect = guard_page(request)
    if redirect:
        return redirect
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    if price <= 0:
        return RedirectResponse(url="/provider?error=INVALID_PRICE", status_code=303)

    try:
        offer = create_offer(
            request_id=request_id,
            provider_id=user["id"],
            price=price,
            delivery_window=delivery_window.strip() or None,
            message=message.strip() or None,
        )
    except OfferError as exc:
        log.info("Offer rejected", extra={"request_id": request_id, "code": exc.code})
        return RedirectResponse(url=f"/provider?error={exc.code}", status_code=303)

    log.info("Offer created", extra={"offer_id": offer["id"], "request_id": request_id})
    return RedirectResponse(url="/provider", status_code=303)
