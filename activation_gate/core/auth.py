"""Clerk JWT authentication for FastAPI."""

import base64
from functools import lru_cache

import jwt as pyjwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from activation_gate.core.config import get_settings
from activation_gate.domain.principal import Principal

logger = structlog.get_logger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

# Clerk sets the session token in this cookie for same-site page loads
SESSION_COOKIE = "__session"


def _extract_frontend_api_domain(pk: str) -> str:
    """Extract the Clerk frontend API domain from a publishable key.

    Clerk publishable keys are formatted as ``pk_(test|live)_<base64>`` where the
    base64 payload decodes to ``<domain>$``.
    """
    parts = pk.split("_", 2)
    if len(parts) != 3 or parts[0] != "pk":
        raise ValueError("Invalid Clerk publishable key format")

    try:
        raw = base64.b64decode(parts[2] + "==")  # add padding
        domain = raw.decode("utf-8").rstrip("$")
    except Exception as exc:
        raise ValueError("Invalid Clerk publishable key: cannot decode") from exc

    if not domain:
        raise ValueError("Invalid Clerk publishable key: empty domain")

    return domain


@lru_cache
def get_jwks_client() -> PyJWKClient:
    """Create a cached JWKS client pointing at the Clerk JWKS endpoint."""
    settings = get_settings()
    domain = _extract_frontend_api_domain(settings.clerk_publishable_key)
    jwks_url = f"https://{domain}/.well-known/jwks.json"
    return PyJWKClient(jwks_url, cache_keys=True, lifespan=300)


def _role_from_claims(claims: dict) -> str | None:
    public_metadata = claims.get("public_metadata") or {}
    role = public_metadata.get("role") or claims.get("role")
    return role if isinstance(role, str) else None


def decode_clerk_jwt(token: str) -> Principal:
    """Verify and decode a Clerk session JWT.

    Raises ``HTTPException(401)`` on any validation failure, 503 when the
    JWKS endpoint is unreachable and 500 when Clerk is misconfigured.
    """
    try:
        client = get_jwks_client()
    except ValueError as exc:
        logger.error("clerk_misconfigured", error=str(exc))
        raise HTTPException(status_code=500, detail="Authentication is misconfigured") from exc

    try:
        signing_key = client.get_signing_key_from_jwt(token)

        payload = pyjwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            options={
                "verify_exp": True,
                "verify_nbf": True,
                "verify_iat": True,
                "verify_aud": False,
                "require": ["sub", "exp", "nbf", "iat"],
            },
        )
    except pyjwt.PyJWKClientConnectionError as exc:
        logger.warning("jwks_fetch_failed", error=str(exc))
        raise HTTPException(status_code=503, detail="Authentication service unavailable") from exc
    except pyjwt.PyJWKClientError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.ImmatureSignatureError:
        raise HTTPException(status_code=401, detail="Token not yet valid (immature)")
    except pyjwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Missing required claim: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Token missing sub claim")

    return Principal(user_id=sub, role=_role_from_claims(payload), claims=payload)


def _validate_audience_claim(aud_claim: object, allowed_audiences: list[str]) -> None:
    """Validate aud claim against configured allowed audiences."""
    if aud_claim is None:
        raise HTTPException(status_code=401, detail="Missing aud claim")

    if isinstance(aud_claim, str):
        audiences = {aud_claim}
    elif isinstance(aud_claim, list) and all(isinstance(v, str) for v in aud_claim):
        audiences = set(aud_claim)
    else:
        raise HTTPException(status_code=401, detail="Invalid aud claim format")

    if not audiences.intersection(allowed_audiences):
        raise HTTPException(status_code=401, detail="Unauthorized audience (aud mismatch)")


def authenticate_token(token: str) -> Principal:
    """Decode a session token and validate issuer, authorized party and audience.

    Raises ``HTTPException`` (401, or 500 when Clerk is misconfigured).
    """
    principal = decode_clerk_jwt(token)
    settings = get_settings()

    # Validate issuer against Clerk domain derived from publishable key
    try:
        expected_issuer = f"https://{_extract_frontend_api_domain(settings.clerk_publishable_key)}"
    except ValueError as exc:
        raise HTTPException(status_code=500, detail="Authentication is misconfigured") from exc
    if principal.claims.get("iss") != expected_issuer:
        raise HTTPException(status_code=401, detail="Invalid issuer (iss mismatch)")

    # Validate authorized party (azp) against allowed origins
    azp = principal.claims.get("azp")
    if not azp:
        raise HTTPException(status_code=401, detail="Missing azp claim")
    if azp not in settings.clerk_allowed_origins:
        raise HTTPException(status_code=401, detail="Unauthorized origin (azp mismatch)")

    # Optional audience validation (only enforced when configured)
    if settings.clerk_allowed_audiences:
        _validate_audience_claim(principal.claims.get("aud"), settings.clerk_allowed_audiences)

    return principal


def _request_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return request.cookies.get(SESSION_COOKIE)


async def resolve_principal(request: Request) -> Principal | None:
    """Principal for a page request, or None when signed out or the token is invalid."""
    token = _request_token(request)
    if not token:
        return None
    try:
        return authenticate_token(token)
    except HTTPException as exc:
        # Page loads fall back to signed-out; the guard then sends them to login
        log = logger.warning if exc.status_code >= 500 else logger.info
        log("session_token_rejected", path=request.url.path, status_code=exc.status_code, detail=exc.detail)
        return None


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Principal:
    """FastAPI dependency that extracts and validates the Clerk JWT.

    Usage::

        @router.get("/protected")
        async def protected(user: Principal = Depends(require_auth)):
            ...
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    principal = authenticate_token(credentials.credentials)

    # Set user_id on request state for downstream use (error handlers, audit logging)
    request.state.user_id = principal.user_id

    return principal


async def optional_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Principal | None:
    """Like ``require_auth`` but yields None for anonymous callers."""
    if credentials is None:
        return None
    return await require_auth(request, credentials)
