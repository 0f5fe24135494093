"""Wiring of the gate's collaborators, built once per process."""

from dataclasses import dataclass

from redis.asyncio import Redis

from activation_gate.core.config import Settings
from activation_gate.domain.principal import Principal
from activation_gate.domain.quiz import QuizGradingEngine
from activation_gate.domain.routes import RouteTable, load_route_table
from activation_gate.domain.steps import StepPolicy
from activation_gate.services.activation_machine import ActivationStateMachine
from activation_gate.services.gate_service import GateService, build_route_guard
from activation_gate.services.question_bank import RedisQuestionSource
from activation_gate.services.quiz_limiter import QuizAttemptLimiter
from activation_gate.services.record_store import RedisRecordStore


@dataclass
class GateComponents:
    settings: Settings
    route_table: RouteTable
    step_policy: StepPolicy
    grader: QuizGradingEngine
    store: RedisRecordStore
    questions: RedisQuestionSource
    limiter: QuizAttemptLimiter
    gate_service: GateService

    def state_machine_for(self, principal: Principal) -> ActivationStateMachine:
        """Fresh state machine for one request; nothing is cached across requests."""
        return ActivationStateMachine(
            user_id=principal.user_id,
            role=self.gate_service.role_for(principal),
            store=self.store,
            policy=self.step_policy,
            grader=self.grader,
            questions=self.questions,
            limiter=self.limiter,
        )


def build_components(redis: Redis, settings: Settings) -> GateComponents:
    """Build every collaborator from settings. Raises on invalid configuration."""
    route_table = load_route_table(settings.route_table_file or None)
    step_policy = StepPolicy.from_config(settings.step_orders)
    store = RedisRecordStore(redis)
    guard = build_route_guard(settings, route_table, step_policy)

    return GateComponents(
        settings=settings,
        route_table=route_table,
        step_policy=step_policy,
        grader=QuizGradingEngine(settings.passing_threshold_percent),
        store=store,
        questions=RedisQuestionSource(redis),
        limiter=QuizAttemptLimiter(
            redis,
            max_attempts=settings.quiz_max_attempts,
            window_seconds=settings.quiz_attempt_window_seconds,
        ),
        gate_service=GateService(
            guard,
            store,
            step_policy,
            default_role=settings.default_role,
            fetch_timeout_seconds=settings.record_fetch_timeout_seconds,
        ),
    )
