"""
Role-based route guard.

A static policy maps each role to the path prefixes it owns. `authorize` turns
(path, role) into a decision; it is used by the edge middleware (role read from
the signed role cookie) and by page handlers (role read from the session), so it
must stay a pure function of its arguments.

Paths that no role owns are allowed for everybody. Register every sensitive
prefix in the policy.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple, Union
from urllib.parse import urlencode

ROLE_HOME_ROUTES = {
    "admin": "/admin/dashboard",
    "supplier": "/provider",
    "consumer": "/",
}


def home_route_for(role) -> str:
    """Landing page for a role; `/` for anything unknown."""
    if not isinstance(role, str):
        return "/"
    return ROLE_HOME_ROUTES.get(role, "/")


def normalize_path(raw) -> str:
    """Strip query string, fragment and trailing slashes."""
    if not isinstance(raw, str) or not raw:
        return "/"
    path = raw.split("?", 1)[0].split("#", 1)[0]
    if not path.startswith("/"):
        path = "/" + path
    path = path.rstrip("/")
    return path or "/"


def route_matches(path: str, route: str) -> bool:
    # "/" is exact-only, otherwise it would claim every path.
    if route == "/":
        return path == "/"
    return path == route or path.startswith(route + "/")


def _matches_any(path: str, routes) -> bool:
    return any(route_matches(path, r) for r in routes)


@dataclass(frozen=True)
class RoutePolicy:
    role_prefixes: Mapping[str, Tuple[str, ...]]
    public_prefixes: Tuple[str, ...] = ()
    # Role-owned prefixes that unauthenticated visitors may also reach.
    guest_prefixes: Tuple[str, ...] = ()
    login_path: str = "/login"
    admin_login_path: str = "/admin/login"

    def __post_init__(self):
        owners = list(self.role_prefixes.items())
        for i, (role_a, prefixes_a) in enumerate(owners):
            for role_b, prefixes_b in owners[i + 1:]:
                for a in prefixes_a:
                    for b in prefixes_b:
                        if route_matches(a, b) or route_matches(b, a):
                            raise ValueError(
                                f"route {a!r} ({role_a}) overlaps {b!r} ({role_b})"
                            )


@dataclass(frozen=True)
class Classification:
    public: bool
    role: Optional[str] = None


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class RedirectLogin:
    target: str


@dataclass(frozen=True)
class RedirectHome:
    target: str


Decision = Union[Allow, RedirectLogin, RedirectHome]

PUBLIC = Classification(public=True)

DEFAULT_POLICY = RoutePolicy(
    role_prefixes={
        "admin": ("/admin",),
        "supplier": ("/provider",),
        "consumer": ("/request", "/history", "/notifications"),
    },
    public_prefixes=(
        "/login",
        "/signup",
        "/logout",
        "/admin/login",
        "/admin/not-authorized",
        "/api",
        "/static",
        "/sw.js",
        "/manifest.webmanifest",
        "/track",
    ),
    guest_prefixes=("/request",),
)


def classify(path: str, policy: RoutePolicy = DEFAULT_POLICY) -> Classification:
    if _matches_any(path, policy.public_prefixes):
        return PUBLIC
    for role, prefixes in policy.role_prefixes.items():
        if _matches_any(path, prefixes):
            return Classification(public=False, role=role)
    return PUBLIC


def login_target(path: str, required_role: str, policy: RoutePolicy = DEFAULT_POLICY) -> str:
    base = policy.admin_login_path if required_role == "admin" else policy.login_path
    return f"{base}?{urlencode({'returnTo': path})}"


def authorize(path, actual_role=None, policy: RoutePolicy = DEFAULT_POLICY) -> Decision:
    path = normalize_path(path)
    cls = classify(path, policy)
    if cls.public:
        return Allow()

    if not actual_role:
        if _matches_any(path, policy.guest_prefixes):
            return Allow()
        return RedirectLogin(login_target(path, cls.role, policy))

    if actual_role == cls.role:
        return Allow()

    return RedirectHome(home_route_for(actual_role))


__all__ = [
    "ROLE_HOME_ROUTES",
    "DEFAULT_POLICY",
    "RoutePolicy",
    "Classification",
    "Allow",
    "RedirectLogin",
    "RedirectHome",
    "Decision",
    "home_route_for",
    "normalize_path",
    "route_matches",
    "classify",
    "login_target",
    "authorize",
]
