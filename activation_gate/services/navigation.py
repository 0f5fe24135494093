"""Navigation session: latest-wins guard evaluation for one client shell."""

import asyncio

import structlog

from activation_gate.services.gate_service import GateEvaluation, GateService
from activation_gate.services.identity import IdentityProvider

logger = structlog.get_logger(__name__)


class NavigationSession:
    """Serializes gate evaluations for one client session.

    A newer navigation cancels the evaluation still in flight, and a
    superseded evaluation never becomes the session's current decision.
    """

    def __init__(self, gate: GateService, identity: IdentityProvider, location: str = "/"):
        self.gate = gate
        self.identity = identity
        self.location = location
        self.last_evaluation: GateEvaluation | None = None
        self._sequence = 0
        self._pending: asyncio.Task | None = None

    async def _evaluate(self, target: str) -> GateEvaluation:
        principal = await self.identity.get_current_principal()
        return await self.gate.evaluate(principal, target)

    async def navigate(self, target: str) -> GateEvaluation | None:
        """Evaluate ``target`` and move the session there (or to the redirect).

        Returns:
            The evaluation, or None if a newer navigation superseded this one
        """
        self._sequence += 1
        sequence = self._sequence

        if self._pending is not None and not self._pending.done():
            self._pending.cancel()

        task = asyncio.create_task(self._evaluate(target))
        self._pending = task
        try:
            evaluation = await task
        except asyncio.CancelledError:
            if task.cancelled() and sequence != self._sequence:
                logger.debug("navigation_superseded", target=target)
                return None
            raise

        if sequence != self._sequence:
            logger.debug("navigation_superseded", target=target)
            return None

        decision = evaluation.decision
        self.location = target if decision.allowed else decision.redirect_to
        self.last_evaluation = evaluation
        return evaluation

    async def follow_auth_changes(self) -> None:
        """Re-evaluate the current location on every sign-in and sign-out.

        Runs until the identity provider closes its change stream.
        """
        async for event in self.identity.auth_state_changes():
            logger.info("navigation_auth_changed", event=event.type.value, location=self.location)
            await self.navigate(self.location)
