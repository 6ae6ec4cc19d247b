from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import get_current_user
from app.guard import home_route_for
from app.layout import esc, format_clp, format_dt, render_page, status_label
from core.database import (
    AMOUNT_OPTIONS,
    get_offers_for_request,
    get_request_by_tracking_token,
)

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
def index(request: Request):
    user, _ = get_current_user(request)
    if user and home_route_for(user.get("role")) != "/":
        return RedirectResponse(url=home_route_for(user.get("role")), status_code=303)

    prices = "".join(
        f"<tr><td>{litres:,} L</td><td>{format_clp(price)}</td></tr>".replace(",", ".")
        for litres, price in AMOUNT_OPTIONS.items()
    )
    body = f"""
    <div class="card">
      <h2>Water delivered to your door</h2>
      <p>Tell us where and how much. Local suppliers send you offers and you pick the one you like.</p>
      <p><a href="/request">💧 Request water now</a> &middot; no account needed.</p>
    </div>
    <div class="card">
      <h3>Reference prices</h3>
      <table>
        <thead><tr><th>Amount</th><th>From</th></tr></thead>
        <tbody>{prices}</tbody>
      </table>
    </div>
    <div class="card">
      <p class="muted">Are you a water supplier? <a href="/signup?role=supplier">Join as a provider</a>.</p>
    </div>
    """
    return render_page("Water Market", body, user=user)


@router.get("/track/{token}", response_class=HTMLResponse)
def track_request(token: str, request: Request):
    user, _ = get_current_user(request)
    req = get_request_by_tracking_token(token)
    if not req:
        body = """
        <div class="card">
          <p>We could not find a request for this tracking link.</p>
          <p><a href="/request">Create a new request</a></p>
        </div>
        """
        return render_page("Track request", body, user=user, status_code=404)

    offers = [o for o in get_offers_for_request(req["id"]) if o.get("status") in ("active", "accepted")]
    if offers:
        offer_rows = "".join(
            f"""
            <tr>
              <td>{esc(o.get('provider_name') or 'Supplier')}</td>
              <td>{format_clp(o.get('price'))}</td>
              <td>{esc(o.get('delivery_window') or '')}</td>
              <td>{status_label(o.get('status'))}</td>
            </tr>
            """
            for o in offers
        )
    else:
        offer_rows = '<tr><td colspan="4">No offers yet.</td></tr>'

    body = f"""
    <div class="card">
      <h2>Request #{req['id']}</h2>
      <p><strong>Status:</strong> {status_label(req.get('status'))}</p>
      <p><strong>Amount:</strong> {req.get('amount')} L &middot; <strong>Address:</strong> {esc(req.get('address'))}</p>
      <p class="muted">Created {format_dt(req.get('created_at'))}</p>
    </div>
    <div class="card">
      <h3>Offers</h3>
      <table>
        <thead><tr><th>Supplier</th><th>Price</th><th>Delivery window</th><th>Status</th></tr></thead>
        <tbody>{offer_rows}</tbody>
      </table>
    </div>
    """
    return render_page("Track request", body, user=user)
