"""Route guard: allow/redirect decisions for navigation targets.

Pure domain functions -- no I/O, no ambient state. The caller passes the
principal and its activation record snapshot explicitly, so the same
``(principal, record, target)`` always yields the same decision.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from activation_gate.domain.principal import Principal
from activation_gate.domain.records import ActivationRecord
from activation_gate.domain.routes import RouteCategory, RouteTable, normalize_path
from activation_gate.domain.steps import StepPolicy


class DecisionKind(StrEnum):
    ALLOW = "allow"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class Decision:
    """Result of guarding one navigation target."""

    kind: DecisionKind
    redirect_to: str | None = None
    reason: str = ""

    @classmethod
    def allow(cls, reason: str = "") -> "Decision":
        return cls(DecisionKind.ALLOW, None, reason)

    @classmethod
    def redirect(cls, target: str, reason: str = "") -> "Decision":
        return cls(DecisionKind.REDIRECT, target, reason)

    @property
    def allowed(self) -> bool:
        return self.kind == DecisionKind.ALLOW


class GatePolicy(Protocol):
    """Decision strategy selected once at startup."""

    route_table: RouteTable

    def decide(
        self,
        principal: Principal | None,
        record: ActivationRecord | None,
        target: str,
    ) -> Decision: ...

    def requires_record(self, principal: Principal | None, target: str) -> bool: ...


class RealGatePolicy:
    """Enforces the activation gate.

    Rules, evaluated in order:
        - Public targets are always allowed
        - Without a principal, Protected and Onboarding targets go to login
        - With a principal, AuthOnly targets go home when activated, else to
          the current onboarding step
        - Activated principals cannot re-enter onboarding
        - Non-activated principals may move freely within onboarding
        - Non-activated principals are sent from Protected targets to their
          current step
    A principal without a record (fetch failed) counts as not activated.
    """

    def __init__(self, route_table: RouteTable, step_policy: StepPolicy):
        self.route_table = route_table
        self.step_policy = step_policy

    def requires_record(self, principal: Principal | None, target: str) -> bool:
        if principal is None:
            return False
        return self.route_table.classify(target) != RouteCategory.PUBLIC

    def _onboarding_completed(self, record: ActivationRecord | None) -> bool:
        return record is not None and record.onboarding_completed

    def _step_route(self, record: ActivationRecord | None) -> str:
        if record is None:
            return self.route_table.onboarding_entry_route
        return self.route_table.route_for_step(self.step_policy.current_step(record))

    def decide(
        self,
        principal: Principal | None,
        record: ActivationRecord | None,
        target: str,
    ) -> Decision:
        routes = self.route_table
        category = routes.classify(target)

        if category == RouteCategory.PUBLIC:
            return Decision.allow("public route")

        if principal is None:
            if category in (RouteCategory.PROTECTED, RouteCategory.ONBOARDING):
                return Decision.redirect(routes.login_route, "authentication required")
            return Decision.allow("unauthenticated on auth route")

        completed = self._onboarding_completed(record)

        if category == RouteCategory.AUTH_ONLY:
            if completed:
                return Decision.redirect(routes.home_route, "already signed in")
            return Decision.redirect(self._step_route(record), "already signed in, onboarding incomplete")

        if category == RouteCategory.ONBOARDING:
            if completed:
                return Decision.redirect(routes.home_route, "onboarding already completed")
            return Decision.allow("onboarding in progress")

        if category == RouteCategory.PROTECTED and not completed:
            return Decision.redirect(self._step_route(record), "onboarding incomplete")

        return Decision.allow("activated")


class BypassGatePolicy:
    """Development bypass: everything is allowed, except that the login and
    onboarding entry paths bounce to home so the bypass is visible."""

    def __init__(self, route_table: RouteTable):
        self.route_table = route_table

    def requires_record(self, principal: Principal | None, target: str) -> bool:
        return False

    def decide(
        self,
        principal: Principal | None,
        record: ActivationRecord | None,
        target: str,
    ) -> Decision:
        path = normalize_path(target)
        if path in (self.route_table.login_route, self.route_table.onboarding_entry_route):
            return Decision.redirect(self.route_table.home_route, "dev bypass")
        return Decision.allow("dev bypass")


class RouteGuard:
    """Single entry point used by every client's navigation layer."""

    def __init__(self, policy: GatePolicy):
        self.policy = policy

    @property
    def route_table(self) -> RouteTable:
        return self.policy.route_table

    @property
    def bypass_enabled(self) -> bool:
        return isinstance(self.policy, BypassGatePolicy)

    def requires_record(self, principal: Principal | None, target: str) -> bool:
        """Whether deciding ``target`` needs the principal's activation record."""
        return self.policy.requires_record(principal, target)

    def decide(
        self,
        principal: Principal | None,
        record: ActivationRecord | None,
        target: str,
    ) -> Decision:
        return self.policy.decide(principal, record, target)
