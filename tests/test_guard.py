import pytest

from app.guard import (
    DEFAULT_POLICY,
    Allow,
    RedirectHome,
    RedirectLogin,
    RoutePolicy,
    authorize,
    classify,
    home_route_for,
    login_target,
    normalize_path,
)

ROLES = ("admin", "supplier", "consumer")


def test_unauthenticated_admin_path_goes_to_admin_login():
    decision = authorize("/admin/dashboard", None)
    assert decision == RedirectLogin("/admin/login?returnTo=%2Fadmin%2Fdashboard")


def test_unauthenticated_supplier_path_goes_to_regular_login():
    decision = authorize("/provider", None)
    assert decision == RedirectLogin("/login?returnTo=%2Fprovider")


def test_return_to_uses_normalized_path():
    decision = authorize("/history/?page=2#top", None)
    assert decision == RedirectLogin("/login?returnTo=%2Fhistory")


@pytest.mark.parametrize("role", ROLES)
def test_wrong_role_goes_home(role):
    for owner, prefixes in DEFAULT_POLICY.role_prefixes.items():
        if owner == role:
            continue
        for prefix in prefixes:
            for path in (prefix, prefix + "/42"):
                decision = authorize(path, role)
                assert decision == RedirectHome(home_route_for(role)), (path, role)


@pytest.mark.parametrize("role", ROLES)
def test_owner_is_allowed(role):
    for prefix in DEFAULT_POLICY.role_prefixes[role]:
        assert authorize(prefix, role) == Allow()
        assert authorize(prefix + "/7/details", role) == Allow()


def test_anonymous_never_allowed_on_non_guest_role_paths():
    for owner, prefixes in DEFAULT_POLICY.role_prefixes.items():
        for prefix in prefixes:
            if prefix in DEFAULT_POLICY.guest_prefixes:
                continue
            decision = authorize(prefix + "/x", None)
            assert isinstance(decision, RedirectLogin)


def test_guest_prefix_allows_anonymous_but_not_other_roles():
    assert authorize("/request", None) == Allow()
    assert authorize("/request", "consumer") == Allow()
    assert authorize("/request", "supplier") == RedirectHome("/provider")


@pytest.mark.parametrize(
    "path",
    ["/login", "/admin/login", "/admin/not-authorized", "/api/requests", "/api/cron/expire-offers", "/track/abc"],
)
def test_public_paths_allowed_for_everyone(path):
    assert authorize(path, None) == Allow()
    for role in ROLES:
        assert authorize(path, role) == Allow()


def test_public_prefix_wins_over_role_prefix():
    assert classify("/admin/login").public is True
    assert classify("/admin/orders").role == "admin"


def test_unowned_paths_allowed():
    assert authorize("/", None) == Allow()
    assert authorize("/", "admin") == Allow()
    assert authorize("/about", None) == Allow()
    # Prefix match is by path segment.
    assert authorize("/administrator", None) == Allow()
    assert authorize("/providers-list", "consumer") == Allow()


def test_authorize_is_pure():
    first = authorize("/admin/orders", "supplier")
    second = authorize("/admin/orders", "supplier")
    assert first == second == RedirectHome("/provider")


def test_unknown_role_goes_to_root():
    assert authorize("/admin", "driver") == RedirectHome("/")


@pytest.mark.parametrize(
    "role,expected",
    [
        ("admin", "/admin/dashboard"),
        ("supplier", "/provider"),
        ("consumer", "/"),
        ("driver", "/"),
        (None, "/"),
        (42, "/"),
    ],
)
def test_home_route_for(role, expected):
    assert home_route_for(role) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("", "/"),
        (None, "/"),
        ("/", "/"),
        ("history", "/history"),
        ("/admin/", "/admin"),
        ("/a/b///", "/a/b"),
        ("/a?b=c", "/a"),
        ("/a#frag", "/a"),
        ("//double", "//double"),
    ],
)
def test_normalize_path(raw, expected):
    assert normalize_path(raw) == expected


def test_overlapping_role_prefixes_rejected():
    with pytest.raises(ValueError):
        RoutePolicy(role_prefixes={"admin": ("/x",), "supplier": ("/x/y",)})


def test_custom_policy_login_paths():
    policy = RoutePolicy(
        role_prefixes={"admin": ("/ops",), "consumer": ("/me",)},
        login_path="/signin",
        admin_login_path="/ops-signin",
    )
    assert authorize("/ops/panel", None, policy) == RedirectLogin("/ops-signin?returnTo=%2Fops%2Fpanel")
    assert authorize("/me", None, policy) == RedirectLogin("/signin?returnTo=%2Fme")
    assert login_target("/me", "consumer", policy) == "/signin?returnTo=%2Fme"
