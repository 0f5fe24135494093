from fastapi import APIRouter

from activation_gate.api.routes import activation, gate, health

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(activation.router, prefix="/activation", tags=["activation"])
api_router.include_router(gate.router, prefix="/gate", tags=["gate"])
