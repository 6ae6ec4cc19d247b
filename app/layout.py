"""
Shared HTML layout and formatting helpers.
"""
import html
from datetime import datetime, timezone

from fastapi.responses import HTMLResponse

_NAV_BY_ROLE = {
    "consumer": [
        ("/request", "💧 New request"),
        ("/history", "📋 My requests"),
        ("/notifications", "🔔 Notifications"),
    ],
    "supplier": [
        ("/provider", "🚚 Dashboard"),
    ],
    "admin": [
        ("/admin/dashboard", "📊 Dashboard"),
        ("/admin/orders", "📄 Orders"),
    ],
}

STATUS_LABELS = {
    "pending": "Waiting for offers",
    "accepted": "Offer accepted",
    "no_offers": "No offers received",
    "cancelled": "Cancelled",
    "active": "Active",
    "expired": "Expired",
}


def esc(value) -> str:
    return html.escape("" if value is None else str(value), quote=True)


def format_dt(value) -> str:
    """Render a datetime or ISO string as a local human-readable string."""
    if not value:
        return ""
    dt = value
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            return value
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


def format_clp(amount) -> str:
    try:
        return "$" + f"{int(amount):,}".replace(",", ".")
    except (TypeError, ValueError):
        return ""


def status_label(status: str | None) -> str:
    return STATUS_LABELS.get(status or "", status or "")


def render_page(title: str, body: str, user: dict | None = None, status_code: int = 200) -> HTMLResponse:
    """
    Shared layout: nav bar per role and a 'signed in as' line.
    """
    links = [("/", "🏠 Home")]
    if user:
        links.extend(_NAV_BY_ROLE.get(user.get("role"), []))
        links.append(("/logout", "Logout"))
        signed_in_text = f'Signed in as <strong>{esc(user.get("email"))}</strong> ({esc(user.get("role"))})'
    else:
        links.append(("/request", "💧 Request water"))
        links.append(("/login", "Login"))
        signed_in_text = "Not signed in"

    nav_html = "\n".join(f'<a href="{href}">{label}</a>' for href, label in links)

    page = f"""
    <!DOCTYPE html>
    <html>
      <head>
        <meta charset="utf-8" />
        <meta name="viewport" content="width=device-width, initial-scale=1" />
        <title>{esc(title)}</title>
        <style>
          * {{ box-sizing: border-box; }}
          body {{
            font-family: system-ui, -apple-system, "Segoe UI", sans-serif;
            margin: 0;
            background: #f0f9ff;
            color: #0f172a;
          }}
          .page {{ max-width: 960px; margin: 0 auto; padding: 1.5rem 1rem 3rem; }}
          header {{
            display: flex;
            justify-content: space-between;
            align-items: center;
            padding: 0.75rem 1rem;
            background: linear-gradient(90deg, #0ea5e9, #0284c7);
            color: #fff;
            border-radius: 0.75rem;
          }}
          header h1 {{ font-size: 1.3rem; margin: 0; }}
          nav {{ display: flex; gap: 0.5rem; flex-wrap: wrap; }}
          nav a {{ color: #fff; text-decoration: none; padding: 6px 10px; border-radius: 8px; background: rgba(255,255,255,0.12); }}
          .signed-in {{ font-size: 0.8rem; opacity: 0.85; margin-top: 0.25rem; }}
          main {{ margin-top: 1.25rem; }}
          .card {{ background: #fff; border: 1px solid #bae6fd; border-radius: 0.75rem; padding: 1rem 1.25rem; margin-bottom: 1rem; }}
          label {{ display: block; margin-top: 0.9rem; }}
          input, select, textarea {{ width: 100%; padding: 0.5rem; margin-top: 0.25rem; border: 1px solid #94a3b8; border-radius: 0.375rem; }}
          input[type="checkbox"] {{ width: auto; }}
          button {{ margin-top: 1.25rem; padding: 0.6rem 1.3rem; border: none; border-radius: 0.5rem; background: #0284c7; color: #fff; font-weight: 600; cursor: pointer; }}
          table {{ width: 100%; border-collapse: collapse; margin-top: 0.75rem; font-size: 0.9rem; }}
          th, td {{ border: 1px solid #e2e8f0; padding: 0.4rem 0.6rem; text-align: left; vertical-align: top; }}
          th {{ background: #e0f2fe; }}
          .muted {{ color: #64748b; font-size: 0.85rem; }}
          .error {{ color: #b91c1c; }}
          .stats {{ display: flex; gap: 0.75rem; flex-wrap: wrap; }}
          .stat {{ flex: 0 0 150px; padding: 0.6rem 0.8rem; border: 1px solid #bae6fd; border-radius: 0.75rem; background: #fff; }}
          .stat .label {{ font-size: 0.75rem; color: #64748b; }}
          .stat .value {{ font-size: 1.3rem; font-weight: 600; }}
        </style>
      </head>
      <body>
        <div class="page">
          <header>
            <div>
              <h1>{esc(title)}</h1>
              <div class="signed-in">{signed_in_text}</div>
            </div>
            <nav>
              {nav_html}
            </nav>
          </header>
          <main>
            {body}
          </main>
        </div>
      </body>
    </html>
    """
    return HTMLResponse(content=page, status_code=status_code)
