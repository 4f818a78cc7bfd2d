"""V1 API router aggregation."""

from fastapi import APIRouter

from meterstore.api.v1.api_keys import router as api_keys_router
from meterstore.api.v1.events import router as events_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(api_keys_router)
v1_router.include_router(events_router)
