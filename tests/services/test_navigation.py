"""Tests for navigation sessions and auth-state re-evaluation."""
import asyncio

import pytest

from activation_gate.core.config import Settings
from activation_gate.domain.guard import Decision
from activation_gate.domain.principal import Principal
from activation_gate.services.gate_service import GateEvaluation, GateService, build_route_guard
from activation_gate.services.identity import AuthEventType, SessionIdentity
from activation_gate.services.navigation import NavigationSession
from activation_gate.services.record_store import RedisRecordStore

pytestmark = pytest.mark.unit


class ScriptedGate:
    """Gate stub: targets in ``blocked`` wait until released."""

    def __init__(self, blocked=()):
        self.blocked = set(blocked)
        self.release = asyncio.Event()
        self.evaluated: list[str] = []

    async def evaluate(self, principal, target):
        self.evaluated.append(target)
        if target in self.blocked:
            await self.release.wait()
        return GateEvaluation(decision=Decision.allow("scripted"))


@pytest.fixture
def gate(redis, route_table, step_policy):
    guard = build_route_guard(Settings(), route_table, step_policy)
    return GateService(guard, RedisRecordStore(redis), step_policy)


async def test_navigate_follows_redirect(gate):
    session = NavigationSession(gate, SessionIdentity())

    evaluation = await session.navigate("/dashboard")

    assert evaluation.decision.redirect_to == "/login"
    assert session.location == "/login"
    assert session.last_evaluation is evaluation


async def test_navigate_allowed_moves_to_target(gate):
    session = NavigationSession(gate, SessionIdentity())
    await session.navigate("/terms")
    assert session.location == "/terms"


async def test_newer_navigation_supersedes_pending_one():
    scripted = ScriptedGate(blocked={"/slow"})
    session = NavigationSession(scripted, SessionIdentity())

    first = asyncio.create_task(session.navigate("/slow"))
    await asyncio.sleep(0)
    second = await session.navigate("/fast")

    assert await first is None
    assert second is not None
    assert session.location == "/fast"
    assert session.last_evaluation is second


async def test_superseded_navigation_never_applies():
    scripted = ScriptedGate(blocked={"/slow"})
    session = NavigationSession(scripted, SessionIdentity(), location="/start")

    first = asyncio.create_task(session.navigate("/slow"))
    await asyncio.sleep(0)
    scripted.release.set()
    await session.navigate("/other")

    assert await first is None
    assert session.location == "/other"


async def test_sign_in_re_evaluates_current_location(gate):
    identity = SessionIdentity()
    session = NavigationSession(gate, identity, location="/dashboard")
    follower = asyncio.create_task(session.follow_auth_changes())
    await asyncio.sleep(0)

    identity.sign_in(Principal(user_id="user-001"))
    identity.close()
    await follower

    assert session.location == "/onboarding/profile"


async def test_sign_out_returns_to_login(gate):
    identity = SessionIdentity(Principal(user_id="user-001"))
    session = NavigationSession(gate, identity, location="/onboarding/profile")
    follower = asyncio.create_task(session.follow_auth_changes())
    await asyncio.sleep(0)

    identity.sign_out()
    identity.close()
    await follower

    assert session.location == "/login"


async def test_auth_stream_fans_out_to_every_subscriber():
    identity = SessionIdentity()
    received: list[list[AuthEventType]] = [[], []]

    async def consume(index):
        async for event in identity.auth_state_changes():
            received[index].append(event.type)

    consumers = [asyncio.create_task(consume(i)) for i in range(2)]
    await asyncio.sleep(0)

    identity.sign_in(Principal(user_id="user-001"))
    identity.sign_out()
    identity.close()
    await asyncio.gather(*consumers)

    assert received == [[AuthEventType.SIGNED_IN, AuthEventType.SIGNED_OUT]] * 2
    assert await identity.get_current_principal() is None
