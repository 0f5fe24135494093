"""Request-level activation gate for page navigations.

Every page request outside the exempt prefixes is evaluated by the
GateService. Redirect decisions become ``307`` responses carrying the
reason; API calls are exempt because their routes enforce step ordering
themselves.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from activation_gate.core import auth
from activation_gate.core.config import get_settings

logger = structlog.get_logger(__name__)


class ActivationGateMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, exempt_prefixes: list[str] | None = None):
        super().__init__(app)
        self.exempt_prefixes = tuple(
            exempt_prefixes if exempt_prefixes is not None else get_settings().gate_exempt_prefixes
        )

    def is_exempt(self, path: str) -> bool:
        return path.startswith(self.exempt_prefixes)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if self.is_exempt(path):
            return await call_next(request)

        gate = getattr(request.app.state, "gate_service", None)
        if gate is None:
            logger.error("gate_not_initialized", path=path)
            return JSONResponse(status_code=503, content={"detail": "Service starting, try again shortly"})

        principal = await auth.resolve_principal(request)
        evaluation = await gate.evaluate(principal, path)
        request.state.principal = principal
        request.state.gate_evaluation = evaluation

        decision = evaluation.decision
        if decision.allowed:
            response = await call_next(request)
        else:
            response = RedirectResponse(url=decision.redirect_to, status_code=307)
            response.headers["X-Gate-Reason"] = decision.reason

        if evaluation.degraded:
            response.headers["X-Gate-Degraded"] = "1"
        return response


def setup_gate_middleware(app: FastAPI) -> None:
    """Add the activation gate middleware to a FastAPI app."""
    app.add_middleware(ActivationGateMiddleware)


__all__ = ["ActivationGateMiddleware", "setup_gate_middleware"]
