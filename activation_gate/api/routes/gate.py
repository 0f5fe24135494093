"""Gate decision API, used by the mobile navigation shells before each route change."""

from fastapi import APIRouter, Depends, Query

from activation_gate.api.routes.activation import get_components
from activation_gate.core.auth import optional_auth
from activation_gate.domain.principal import Principal
from activation_gate.schemas.activation import GateDecisionResponse
from activation_gate.services.components import GateComponents

router = APIRouter()


@router.get("/decision", response_model=GateDecisionResponse)
async def get_gate_decision(
    path: str = Query(..., min_length=1),
    user: Principal | None = Depends(optional_auth),
    components: GateComponents = Depends(get_components),
):
    """Decide whether ``path`` may be shown to the caller.

    Anonymous callers are evaluated as signed out. A failed record fetch
    still answers 200 with ``degraded=true`` and the conservative decision.
    """
    evaluation = await components.gate_service.evaluate(user, path)
    decision = evaluation.decision
    return GateDecisionResponse(
        path=path,
        category=components.route_table.classify(path).value,
        allowed=decision.allowed,
        redirect_to=decision.redirect_to,
        reason=decision.reason,
        degraded=evaluation.degraded,
    )
