"""Tests for route classification."""
import json

import pytest

from activation_gate.domain.routes import (
    RouteCategory,
    RouteRule,
    RouteTable,
    load_route_table,
    normalize_path,
)
from activation_gate.domain.steps import StepId

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "path,category",
    [
        ("/", RouteCategory.PUBLIC),
        ("/terms", RouteCategory.PUBLIC),
        ("/help/faq/payments", RouteCategory.PUBLIC),
        ("/login", RouteCategory.AUTH_ONLY),
        ("/register", RouteCategory.AUTH_ONLY),
        ("/onboarding", RouteCategory.ONBOARDING),
        ("/onboarding/profile", RouteCategory.ONBOARDING),
        ("/activation/quiz", RouteCategory.ONBOARDING),
        ("/dashboard", RouteCategory.PROTECTED),
        ("/projects/42/tasks", RouteCategory.PROTECTED),
    ],
)
def test_default_classification(route_table, path, category):
    assert route_table.classify(path) == category


def test_unknown_path_is_protected(route_table):
    assert route_table.classify("/some/new/feature") == RouteCategory.PROTECTED


def test_wildcard_does_not_match_sibling_prefix(route_table):
    # "/helpdesk" shares a prefix with "/help/*" but is not under it
    assert route_table.classify("/helpdesk") == RouteCategory.PROTECTED


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("/dashboard/", "/dashboard"),
        ("/dashboard?tab=1", "/dashboard"),
        ("/dashboard#top", "/dashboard"),
        ("dashboard", "/dashboard"),
        ("/", "/"),
        ("", "/"),
        ("/help/../dashboard", "/dashboard"),
        ("/onboarding/./profile", "/onboarding/profile"),
        ("//dashboard", "/dashboard"),
        ("/a//b/", "/a/b"),
        ("/..", "/"),
    ],
)
def test_normalize_path(raw, expected):
    assert normalize_path(raw) == expected


def test_query_string_does_not_change_category(route_table):
    assert route_table.classify("/login?next=/dashboard") == RouteCategory.AUTH_ONLY


def test_dot_segments_resolved_before_classification(route_table):
    assert route_table.classify("/help/../dashboard") == RouteCategory.PROTECTED
    assert route_table.classify("/onboarding/../settings") == RouteCategory.PROTECTED
    assert route_table.classify("/terms/./") == RouteCategory.PUBLIC


def test_longest_wildcard_wins():
    table = RouteTable(
        [
            RouteRule("/app/*", RouteCategory.PROTECTED),
            RouteRule("/app/public/*", RouteCategory.PUBLIC),
        ],
        login_route="/login",
        home_route="/app",
        onboarding_entry_route="/welcome",
        step_routes={},
    )
    assert table.classify("/app/public/about") == RouteCategory.PUBLIC
    assert table.classify("/app/settings") == RouteCategory.PROTECTED


def test_exact_match_beats_wildcard():
    table = RouteTable(
        [
            RouteRule("/docs/*", RouteCategory.PUBLIC),
            RouteRule("/docs/internal", RouteCategory.PROTECTED),
        ],
        login_route="/login",
        home_route="/",
        onboarding_entry_route="/welcome",
        step_routes={},
    )
    assert table.classify("/docs/internal") == RouteCategory.PROTECTED
    assert table.classify("/docs/guide") == RouteCategory.PUBLIC


def test_root_wildcard_is_catch_all():
    table = RouteTable(
        [RouteRule("/*", RouteCategory.PUBLIC)],
        login_route="/login",
        home_route="/",
        onboarding_entry_route="/welcome",
        step_routes={},
    )
    assert table.classify("/anything/at/all") == RouteCategory.PUBLIC


def test_route_for_step(route_table):
    assert route_table.route_for_step(StepId.QUIZ) == "/activation/quiz"
    assert route_table.route_for_step(None) == "/onboarding"


def test_route_for_unmapped_step_falls_back_to_entry():
    table = RouteTable(
        [],
        login_route="/login",
        home_route="/",
        onboarding_entry_route="/welcome",
        step_routes={StepId.PROFILE: "/welcome/profile"},
    )
    assert table.route_for_step(StepId.QUIZ) == "/welcome"


def test_load_route_table_from_file(tmp_path):
    config = {
        "public": ["/", "/about"],
        "auth_only": ["/sign-in"],
        "onboarding": ["/setup/*"],
        "protected": ["/home"],
        "login_route": "/sign-in",
        "home_route": "/home",
        "onboarding_entry_route": "/setup",
        "step_routes": {"profile": "/setup/profile/"},
    }
    path = tmp_path / "routes.json"
    path.write_text(json.dumps(config))

    table = load_route_table(str(path))

    assert table.login_route == "/sign-in"
    assert table.classify("/setup") == RouteCategory.ONBOARDING
    assert table.classify("/about") == RouteCategory.PUBLIC
    assert table.route_for_step(StepId.PROFILE) == "/setup/profile"


def test_load_route_table_defaults_without_path():
    table = load_route_table(None)
    assert table.home_route == "/dashboard"
    assert table.login_route == "/login"
