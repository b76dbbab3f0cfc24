"""API route aggregation.

All routers registered here get mounted in main.py. The live gateways
(/flight_ws, /sse/location) are mounted separately, outside the prefix.
"""

from fastapi import APIRouter

from dronebridge.api.flights import router as flights_router
from dronebridge.api.health import router as health_router
from dronebridge.api.tracks import router as tracks_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(tracks_router, tags=["tracks"])
api_router.include_router(flights_router, tags=["flights"])
