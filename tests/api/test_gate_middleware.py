"""Tests for the request-level activation gate."""
from unittest.mock import MagicMock, patch

import jwt as pyjwt
import pytest

from activation_gate.core.auth import resolve_principal as real_resolve_principal
from activation_gate.core.config import Settings
from tests.factories import UnreachableStore

pytestmark = pytest.mark.integration


def _get(client, path):
    return client.get(path, follow_redirects=False)


class TestSignedOut:
    @pytest.fixture(autouse=True)
    def signed_out(self, principal_holder):
        principal_holder.sign_out()

    def test_protected_page_redirects_to_login(self, api_client):
        response = _get(api_client, "/dashboard")

        assert response.status_code == 307
        assert response.headers["location"] == "/login"
        assert response.headers["x-gate-reason"] == "authentication required"

    def test_public_page_served(self, api_client):
        response = _get(api_client, "/terms")
        assert response.status_code == 200
        assert response.text == "page"

    def test_login_page_served(self, api_client):
        assert _get(api_client, "/login").status_code == 200

    def test_api_paths_are_exempt(self, api_client):
        # The API answers for itself (401), the gate does not redirect it
        assert _get(api_client, "/api/activation/status").status_code == 401


class TestSignedIn:
    def test_new_user_redirected_to_first_step(self, api_client):
        response = _get(api_client, "/dashboard")
        assert response.status_code == 307
        assert response.headers["location"] == "/onboarding/profile"

    def test_onboarding_pages_reachable(self, api_client):
        assert _get(api_client, "/activation/quiz").status_code == 200

    def test_login_redirects_to_current_step(self, api_client):
        assert _get(api_client, "/login").headers["location"] == "/onboarding/profile"

    def test_activated_user_reaches_dashboard(self, api_client, activate):
        activate(api_client)

        assert _get(api_client, "/dashboard").status_code == 200
        assert _get(api_client, "/login").headers["location"] == "/dashboard"
        assert _get(api_client, "/onboarding").headers["location"] == "/dashboard"

    def test_degraded_header_on_fetch_failure(self, api_client):
        api_client.app.state.gate_service.store = UnreachableStore()

        onboarding = _get(api_client, "/onboarding")
        dashboard = _get(api_client, "/dashboard")

        assert onboarding.status_code == 200
        assert onboarding.headers["x-gate-degraded"] == "1"
        assert dashboard.headers["location"] == "/onboarding"
        assert dashboard.headers["x-gate-degraded"] == "1"


class TestDevBypass:
    @pytest.fixture
    def settings(self):
        return Settings(dev_bypass_enabled=True, environment="development")

    def test_onboarding_entry_redirects_home(self, api_client):
        response = _get(api_client, "/onboarding")
        assert response.status_code == 307
        assert response.headers["location"] == "/dashboard"

    def test_protected_page_served_without_activation(self, api_client, principal_holder):
        principal_holder.sign_out()
        assert _get(api_client, "/dashboard").status_code == 200

    def test_onboarding_steps_still_reachable(self, api_client):
        assert _get(api_client, "/onboarding/profile").status_code == 200


def _unreachable_jwks_client():
    client = MagicMock()
    client.get_signing_key_from_jwt.side_effect = pyjwt.PyJWKClientConnectionError("Fail to fetch data from the url")
    return client


class TestSessionTokenFailures:
    def test_jwks_outage_redirects_to_login(self, api_client):
        with (
            patch("activation_gate.core.auth.resolve_principal", new=real_resolve_principal),
            patch("activation_gate.core.auth.get_jwks_client", _unreachable_jwks_client),
        ):
            response = api_client.get(
                "/dashboard",
                headers={"Authorization": "Bearer some.session.token"},
                follow_redirects=False,
            )

        assert response.status_code == 307
        assert response.headers["location"] == "/login"
