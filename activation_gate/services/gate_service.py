"""GateService: evaluates navigation targets against the route guard."""

import asyncio
from dataclasses import dataclass

import structlog

from activation_gate.core.config import Settings
from activation_gate.core.exceptions import RecordFetchFailure
from activation_gate.domain.guard import BypassGatePolicy, Decision, RealGatePolicy, RouteGuard
from activation_gate.domain.principal import Principal
from activation_gate.domain.records import ActivationRecord, new_record
from activation_gate.domain.routes import RouteTable
from activation_gate.domain.steps import Role, StepPolicy
from activation_gate.services.record_store import RecordStore

logger = structlog.get_logger(__name__)


def validate_gate_settings(settings: Settings) -> None:
    """Fail fast if the dev bypass is enabled in a production environment."""
    if settings.dev_bypass_enabled and settings.environment.lower() == "production":
        raise RuntimeError("DEV_BYPASS_ENABLED must not be set in production")


def build_route_guard(settings: Settings, route_table: RouteTable, step_policy: StepPolicy) -> RouteGuard:
    """Select the gate policy once, at startup."""
    validate_gate_settings(settings)
    if settings.dev_bypass_enabled:
        logger.warning(
            "gate_dev_bypass_enabled",
            environment=settings.environment,
            message="Activation gate is bypassed; only login and onboarding entry redirect home",
        )
        return RouteGuard(BypassGatePolicy(route_table))
    return RouteGuard(RealGatePolicy(route_table, step_policy))


@dataclass(frozen=True)
class GateEvaluation:
    """A decision plus the record snapshot it was made from.

    ``degraded`` is set when the record could not be fetched and the
    decision fell back to treating the user as not yet onboarded.
    """

    decision: Decision
    record: ActivationRecord | None = None
    degraded: bool = False


class GateService:
    """Loads the principal's record (one round trip) and asks the guard."""

    def __init__(
        self,
        guard: RouteGuard,
        store: RecordStore,
        step_policy: StepPolicy,
        default_role: Role | str = Role.DOER,
        fetch_timeout_seconds: float = 2.0,
    ):
        self.guard = guard
        self.store = store
        self.step_policy = step_policy
        self.default_role = Role(default_role)
        self.fetch_timeout_seconds = fetch_timeout_seconds

    def role_for(self, principal: Principal) -> Role:
        try:
            return Role(principal.role) if principal.role else self.default_role
        except ValueError:
            logger.warning("principal_role_unknown", user_id=principal.user_id, role=principal.role)
            return self.default_role

    async def load_record(self, principal: Principal) -> ActivationRecord:
        """Fetch and normalize a principal's record; blank if none stored.

        Raises:
            RecordFetchFailure: store unreachable or slower than the fetch timeout
        """
        try:
            record = await asyncio.wait_for(
                self.store.get_activation_record(principal.user_id),
                timeout=self.fetch_timeout_seconds,
            )
        except TimeoutError as exc:
            raise RecordFetchFailure(principal.user_id, reason="timeout") from exc

        if record is None:
            return new_record(principal.user_id, self.role_for(principal))

        normalized = self.step_policy.normalize(record)
        if normalized is not record:
            logger.warning(
                "activation_record_inconsistent",
                user_id=record.user_id,
                stored=record.onboarding_completed,
                derived=normalized.onboarding_completed,
            )
        return normalized

    async def evaluate(self, principal: Principal | None, target: str) -> GateEvaluation:
        """Decide ``target`` for ``principal``.

        A failed fetch is not cached; the next navigation fetches again.
        """
        record = None
        degraded = False

        if principal is not None and self.guard.requires_record(principal, target):
            try:
                record = await self.load_record(principal)
            except RecordFetchFailure as exc:
                logger.warning(
                    "gate_record_fetch_failed",
                    user_id=principal.user_id,
                    target=target,
                    reason=exc.reason,
                )
                degraded = True

        decision = self.guard.decide(principal, record, target)
        logger.debug(
            "gate_decision",
            user_id=principal.user_id if principal else None,
            target=target,
            decision=decision.kind.value,
            redirect_to=decision.redirect_to,
            reason=decision.reason,
            degraded=degraded,
        )
        return GateEvaluation(decision=decision, record=record, degraded=degraded)
