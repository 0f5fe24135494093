"""Route classification.

A static table mapping every navigable path to one of four categories.
Built once at startup and never mutated; unknown paths are Protected.
"""

import json
import posixpath
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType

from pydantic import BaseModel, Field

from activation_gate.domain.steps import StepId


class RouteCategory(StrEnum):
    PUBLIC = "public"
    AUTH_ONLY = "auth_only"
    ONBOARDING = "onboarding"
    PROTECTED = "protected"


@dataclass(frozen=True)
class RouteRule:
    """A path or ``prefix/*`` wildcard and its category."""

    pattern: str
    category: RouteCategory

    @property
    def is_wildcard(self) -> bool:
        return self.pattern.endswith("/*")

    @property
    def prefix(self) -> str:
        return self.pattern[:-2] if self.is_wildcard else self.pattern


def normalize_path(path: str) -> str:
    """Canonical form used for classification.

    Query and fragment are dropped, ``.`` and ``..`` segments are resolved,
    repeated and trailing slashes are collapsed. The result always starts
    with a single '/'.
    """
    path = path.split("#", 1)[0].split("?", 1)[0].strip()
    path = posixpath.normpath("/" + path)
    # normpath keeps a leading '//'
    return "/" + path.lstrip("/")


class RouteTable:
    """Immutable classification of paths plus the gate's landmark routes."""

    def __init__(
        self,
        rules: Iterable[RouteRule],
        *,
        login_route: str,
        home_route: str,
        onboarding_entry_route: str,
        step_routes: Mapping[StepId, str],
    ):
        exact: dict[str, RouteCategory] = {}
        wildcards: list[RouteRule] = []
        for rule in rules:
            if rule.is_wildcard:
                prefix = normalize_path(rule.prefix)
                wildcards.append(RouteRule("/*" if prefix == "/" else prefix + "/*", rule.category))
            else:
                exact[normalize_path(rule.pattern)] = rule.category

        self._exact = MappingProxyType(exact)
        # Longest prefix wins
        self._wildcards = tuple(sorted(wildcards, key=lambda r: len(r.prefix), reverse=True))
        self.login_route = normalize_path(login_route)
        self.home_route = normalize_path(home_route)
        self.onboarding_entry_route = normalize_path(onboarding_entry_route)
        self.step_routes = MappingProxyType({StepId(k): normalize_path(v) for k, v in step_routes.items()})

    def classify(self, path: str) -> RouteCategory:
        path = normalize_path(path)
        category = self._exact.get(path)
        if category is not None:
            return category

        for rule in self._wildcards:
            prefix = rule.prefix
            if prefix == "" or path == prefix or path.startswith(prefix + "/"):
                return rule.category

        return RouteCategory.PROTECTED

    def route_for_step(self, step: StepId | None) -> str:
        """Onboarding route for a step; the onboarding entry if unmapped."""
        if step is None:
            return self.onboarding_entry_route
        return self.step_routes.get(step, self.onboarding_entry_route)

    @classmethod
    def from_config(cls, config: "RouteTableConfig") -> "RouteTable":
        rules = [
            RouteRule(pattern, category)
            for category, patterns in (
                (RouteCategory.PUBLIC, config.public),
                (RouteCategory.AUTH_ONLY, config.auth_only),
                (RouteCategory.ONBOARDING, config.onboarding),
                (RouteCategory.PROTECTED, config.protected),
            )
            for pattern in patterns
        ]
        return cls(
            rules,
            login_route=config.login_route,
            home_route=config.home_route,
            onboarding_entry_route=config.onboarding_entry_route,
            step_routes=config.step_routes,
        )


class RouteTableConfig(BaseModel):
    """File format for a route table (JSON)."""

    public: list[str] = Field(default_factory=list)
    auth_only: list[str] = Field(default_factory=list)
    onboarding: list[str] = Field(default_factory=list)
    protected: list[str] = Field(default_factory=list)
    login_route: str = "/login"
    home_route: str = "/dashboard"
    onboarding_entry_route: str = "/onboarding"
    step_routes: dict[StepId, str] = Field(default_factory=dict)


DEFAULT_ROUTE_CONFIG = RouteTableConfig(
    public=[
        "/",
        "/splash",
        "/terms",
        "/privacy",
        "/help/*",
    ],
    auth_only=[
        "/login",
        "/register",
        "/signin",
        "/forgot-password",
    ],
    onboarding=[
        "/onboarding",
        "/onboarding/*",
        "/activation",
        "/activation/*",
    ],
    protected=[
        "/dashboard",
        "/projects/*",
        "/profile/*",
        "/settings",
        "/resources/*",
    ],
    step_routes={
        StepId.PROFILE: "/onboarding/profile",
        StepId.TRAINING: "/activation/training",
        StepId.QUIZ: "/activation/quiz",
        StepId.BANK_DETAILS: "/activation/bank-details",
        StepId.PAYMENT_METHOD: "/activation/payment-method",
    },
)


def load_route_table(path: str | None = None) -> RouteTable:
    """Load a route table from a JSON file, or the defaults when no path is given."""
    if not path:
        return RouteTable.from_config(DEFAULT_ROUTE_CONFIG)
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return RouteTable.from_config(RouteTableConfig.model_validate(raw))
