from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import guard_page
from app.layout import esc, format_dt, render_page, status_label
from core.database import get_all_requests, get_stats

router = APIRouter()


@router.get("/admin")
def admin_root(request: Request):
    _, redirect = guard_page(request)
    if redirect:
        return redirect
    return RedirectResponse(url="/admin/dashboard", status_code=303)


@router.get("/admin/dashboard", response_class=HTMLResponse)
def admin_dashboard(request: Request):
    user, redirect = guard_page(request)
    if redirect:
        return redirect

    stats = get_stats()
    labels = [
        ("requests", "All requests"),
        ("pending_requests", "Waiting for offers"),
        ("accepted_requests", "Accepted"),
        ("active_offers", "Active offers"),
        ("expired_offers", "Expired offers"),
        ("suppliers", "Suppliers"),
        ("consumers", "Consumers"),
    ]
    stats_html = "".join(
        f"""
        <div class="stat">
          <div class="label">{label}</div>
          <div class="value">{stats.get(key, 0)}</div>
        </div>
        """
        for key, label in labels
    )
    body = f"""
    <div class="card">
      <h2>Operations</h2>
      <div class="stats">{stats_html}</div>
      <p class="muted"><a href="/admin/orders">View all orders</a></p>
    </div>
    """
    return render_page("Admin dashboard", body, user=user)


@router.get("/admin/orders", response_class=HTMLResponse)
def admin_orders(request: Request):
    user, redirect = guard_page(request)
    if redirect:
        return redirect

    orders = get_all_requests(limit=200)
    rows_html = ""
    for r in orders:
        who = esc(r.get("guest_name") or "")
        if not r.get("consumer_id"):
            who += ' <span class="muted">(guest)</span>'
        rows_html += f"""
        <tr>
          <td>{r.get('id')}</td>
          <td>{who}</td>
          <td>{esc(r.get('guest_phone') or '')}</td>
          <td>{esc(r.get('address'))}</td>
          <td>{r.get('amount')} L{' 🔥' if r.get('is_urgent') else ''}</td>
          <td>{status_label(r.get('status'))}</td>
          <td>{format_dt(r.get('created_at'))}</td>
        </tr>
        """
    if not orders:
        rows_html = '<tr><td colspan="7">No orders yet.</td></tr>'

    body = f"""
    <div class="card">
      <h2>Orders</h2>
      <p class="muted">Showing the most recent {len(orders)} requests.</p>
      <table>
        <thead>
          <tr>
            <th>ID</th>
            <th>Customer</th>
            <th>Phone</th>
            <th>Address</th>
            <th>Amount</th>
            <th>Status</th>
            <th>Created</th>
          </tr>
        </thead>
        <tbody>
          {rows_html}
        </tbody>
      </table>
    </div>
    """
    return render_page("Orders", body, user=user)
