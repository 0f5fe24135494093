"""API-specific test fixtures."""

from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient

from activation_gate.domain.principal import Principal
from tests.factories import make_questions


class PrincipalHolder:
    """Mutable signed-in user for dependency overrides; None means signed out."""

    def __init__(self):
        self.principal: Principal | None = Principal(user_id="user-001")

    def sign_in(self, user_id: str = "user-001", role: str | None = None) -> None:
        self.principal = Principal(user_id=user_id, role=role)

    def sign_out(self) -> None:
        self.principal = None


@pytest.fixture
def principal_holder():
    return PrincipalHolder()


def _build_test_app(principal_holder: PrincipalHolder, settings) -> FastAPI:
    from activation_gate.api.routes import api_router
    from activation_gate.core.auth import optional_auth, require_auth
    from activation_gate.main import generic_exception_handler, http_exception_handler
    from activation_gate.middleware.gate import setup_gate_middleware
    from activation_gate.services.components import build_components
    from activation_gate.services.question_bank import RedisQuestionSource

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - fake Redis created in TestClient's event loop."""
        redis = FakeAsyncRedis(decode_responses=True)
        components = build_components(redis, settings)
        await RedisQuestionSource(redis).put_question_bank("doer", make_questions())
        app.state.redis = redis
        app.state.components = components
        app.state.gate_service = components.gate_service
        yield
        await redis.flushall()
        await redis.aclose()

    app = FastAPI(title="Activation Gate - Test Client", lifespan=test_lifespan)

    setup_gate_middleware(app)

    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    # Stand-in pages for the navigation gate
    for page in ("/", "/terms", "/login", "/dashboard", "/onboarding", "/activation/quiz", "/onboarding/profile"):
        app.add_api_route(page, lambda: PlainTextResponse("page"), methods=["GET"])

    async def _require_auth():
        if principal_holder.principal is None:
            raise HTTPException(status_code=401, detail="Missing authorization header")
        return principal_holder.principal

    async def _optional_auth():
        return principal_holder.principal

    app.dependency_overrides[require_auth] = _require_auth
    app.dependency_overrides[optional_auth] = _optional_auth
    return app


@pytest.fixture
def settings():
    from activation_gate.core.config import Settings

    return Settings()


@pytest.fixture
def api_client(principal_holder, settings):
    """FastAPI test client over fake Redis with auth overridden by ``principal_holder``.

    Page requests resolve their principal through the same holder.
    """
    app = _build_test_app(principal_holder, settings)

    async def _resolve_principal(request):
        return principal_holder.principal

    with patch("activation_gate.core.auth.resolve_principal", new=_resolve_principal):
        with TestClient(app) as client:
            yield client


@pytest.fixture
def activate():
    """Drive the signed-in user through every doer step via the API."""

    def _activate(client: TestClient) -> None:
        for step in ("profile", "training"):
            assert client.post(f"/api/activation/steps/{step}/complete").status_code == 200
        answers = {f"q{i:02d}": 2 for i in range(10)}
        assert client.post("/api/activation/quiz/submit", json={"answers": answers}).status_code == 200
        bank = {
            "account_holder_name": "Asha Verma",
            "account_number": "123456789012",
            "ifsc_code": "HDFC0001234",
        }
        assert client.post("/api/activation/bank-details", json=bank).status_code == 200

    return _activate
