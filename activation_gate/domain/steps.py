"""Activation step ordering and unlock rules.

Pure domain logic with no external dependencies. Every role shares the same
rule: the first step is always unlocked and each later step unlocks once its
predecessor is complete. Roles differ only in which steps they require.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from activation_gate.domain.records import ActivationRecord


class Role(StrEnum):
    """Account roles that go through activation."""

    DOER = "doer"
    SUPERVISOR = "supervisor"
    CLIENT = "client"


class StepId(StrEnum):
    """Units of required onboarding work."""

    PROFILE = "profile"
    TRAINING = "training"
    QUIZ = "quiz"
    BANK_DETAILS = "bank_details"
    PAYMENT_METHOD = "payment_method"


DEFAULT_STEP_ORDERS: Mapping[Role, tuple[StepId, ...]] = MappingProxyType({
    Role.DOER: (StepId.PROFILE, StepId.TRAINING, StepId.QUIZ, StepId.BANK_DETAILS),
    Role.SUPERVISOR: (StepId.PROFILE, StepId.TRAINING, StepId.QUIZ, StepId.BANK_DETAILS),
    Role.CLIENT: (StepId.PROFILE, StepId.PAYMENT_METHOD),
})


class GatePhase(StrEnum):
    """Coarse position of a user in the activation sequence."""

    UNSTARTED = "unstarted"
    STEP_IN_PROGRESS = "step_in_progress"
    FULLY_ACTIVATED = "fully_activated"


@dataclass(frozen=True)
class GateState:
    """Snapshot of where a record sits in its role's sequence."""

    phase: GatePhase
    step: StepId | None = None
    step_index: int | None = None
    total_steps: int = 0


class StepPolicy:
    """Step order per role plus the unlock and completion predicates."""

    def __init__(self, orders: Mapping[Role, Sequence[StepId]] | None = None):
        source = orders if orders is not None else DEFAULT_STEP_ORDERS
        normalized: dict[Role, tuple[StepId, ...]] = {}
        for role, steps in source.items():
            ordered = tuple(StepId(s) for s in steps)
            if not ordered:
                raise ValueError(f"Role '{role}' has no activation steps")
            if len(set(ordered)) != len(ordered):
                raise ValueError(f"Role '{role}' lists a step more than once")
            normalized[Role(role)] = ordered
        self._orders = MappingProxyType(normalized)

    @classmethod
    def from_config(cls, step_orders: Mapping[str, Sequence[str]]) -> StepPolicy:
        """Build a policy from the string-keyed settings mapping."""
        return cls({Role(role): [StepId(s) for s in steps] for role, steps in step_orders.items()})

    @property
    def roles(self) -> tuple[Role, ...]:
        return tuple(self._orders)

    def order(self, role: Role | str) -> tuple[StepId, ...]:
        try:
            return self._orders[Role(role)]
        except (KeyError, ValueError) as exc:
            raise ValueError(f"No activation sequence configured for role '{role}'") from exc

    def is_complete(self, record: ActivationRecord, step: StepId) -> bool:
        return record.is_step_complete(step)

    def is_unlocked(self, record: ActivationRecord, step: StepId) -> bool:
        """True for the first step, else iff the preceding step is complete.

        Steps outside the role's sequence are never unlocked.
        """
        steps = self.order(record.role)
        if step not in steps:
            return False
        index = steps.index(step)
        if index == 0:
            return True
        return self.is_complete(record, steps[index - 1])

    def blocking_step(self, record: ActivationRecord, step: StepId) -> StepId | None:
        """Return the predecessor that keeps ``step`` locked, if any."""
        steps = self.order(record.role)
        if step not in steps:
            return None
        index = steps.index(step)
        if index == 0 or self.is_complete(record, steps[index - 1]):
            return None
        return steps[index - 1]

    def current_step(self, record: ActivationRecord) -> StepId | None:
        """First incomplete step, or None when the role is fully activated."""
        for step in self.order(record.role):
            if not self.is_complete(record, step):
                return step
        return None

    def is_fully_activated(self, record: ActivationRecord) -> bool:
        return all(self.is_complete(record, step) for step in self.order(record.role))

    def normalize(self, record: ActivationRecord) -> ActivationRecord:
        """Return ``record`` with onboarding_completed recomputed from its steps.

        The same object is returned when the cached flag is already correct.
        """
        derived = self.is_fully_activated(record)
        if record.onboarding_completed == derived:
            return record
        return record.model_copy(update={"onboarding_completed": derived})

    def has_valid_ordering(self, record: ActivationRecord) -> bool:
        """Completed steps must form a prefix of the role's sequence."""
        seen_incomplete = False
        for step in self.order(record.role):
            complete = self.is_complete(record, step)
            if complete and seen_incomplete:
                return False
            if not complete:
                seen_incomplete = True
        return True

    def state(self, record: ActivationRecord) -> GateState:
        steps = self.order(record.role)
        current = self.current_step(record)
        if current is None:
            return GateState(GatePhase.FULLY_ACTIVATED, total_steps=len(steps))

        index = steps.index(current)
        phase = GatePhase.UNSTARTED if index == 0 else GatePhase.STEP_IN_PROGRESS
        return GateState(phase, step=current, step_index=index, total_steps=len(steps))
