"""Identity provider for a client session, with an auth-state change stream."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol

import structlog

from activation_gate.domain.principal import Principal

logger = structlog.get_logger(__name__)


class AuthEventType(StrEnum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


@dataclass(frozen=True)
class AuthStateEvent:
    type: AuthEventType
    principal: Principal | None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class IdentityProvider(Protocol):
    async def get_current_principal(self) -> Principal | None: ...

    def auth_state_changes(self) -> AsyncIterator[AuthStateEvent]: ...


class SessionIdentity:
    """In-process identity for one client session.

    ``sign_in``/``sign_out`` update the current principal and fan the change
    out to every active ``auth_state_changes()`` subscriber.
    """

    def __init__(self, principal: Principal | None = None):
        self._principal = principal
        self._subscribers: set[asyncio.Queue[AuthStateEvent | None]] = set()

    async def get_current_principal(self) -> Principal | None:
        return self._principal

    def sign_in(self, principal: Principal) -> None:
        self._principal = principal
        logger.info("session_signed_in", user_id=principal.user_id)
        self._publish(AuthStateEvent(AuthEventType.SIGNED_IN, principal))

    def sign_out(self) -> None:
        previous = self._principal
        self._principal = None
        logger.info("session_signed_out", user_id=previous.user_id if previous else None)
        self._publish(AuthStateEvent(AuthEventType.SIGNED_OUT, None))

    def close(self) -> None:
        """End every subscriber's stream."""
        for queue in list(self._subscribers):
            queue.put_nowait(None)

    def _publish(self, event: AuthStateEvent) -> None:
        for queue in list(self._subscribers):
            queue.put_nowait(event)

    async def auth_state_changes(self) -> AsyncIterator[AuthStateEvent]:
        queue: asyncio.Queue[AuthStateEvent | None] = asyncio.Queue()
        self._subscribers.add(queue)
        try:
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            self._subscribers.discard(queue)
