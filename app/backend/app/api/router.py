"""Top-level API router."""

from fastapi import APIRouter

from app.api.routes.billing_settings import router as billing_settings_router
from app.api.routes.entities import router as entities_router
from app.api.routes.health import router as health_router
from app.api.routes.me import router as me_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(me_router)
# Collection-level rate/rounding paths must be matched before entity-level ones.
api_router.include_router(billing_settings_router)
api_router.include_router(entities_router)
