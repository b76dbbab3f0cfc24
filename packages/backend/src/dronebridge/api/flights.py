"""Flight API routes."""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from dronebridge.db.engine import get_db
from dronebridge.schemas.track import FlightCreate, FlightRead
from dronebridge.services.errors import InvalidEntityId
from dronebridge.services.flight_service import FlightService
from dronebridge.services.track_service import TrackService

router = APIRouter()


def _svc(db: AsyncSession = Depends(get_db)) -> FlightService:
    return FlightService(db)


@router.post("/flights", response_model=FlightRead, status_code=201)
async def create_flight(body: FlightCreate, svc: FlightService = Depends(_svc)):
    """Create an empty flight report, optionally linked to a track."""
    try:
        if body.track_id and not await TrackService(svc.db).exists(body.track_id):
            raise HTTPException(status_code=404, detail="Track not found")
        return await svc.create(track_id=body.track_id)
    except InvalidEntityId as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/flights/{flight_id}", response_model=FlightRead)
async def get_flight(flight_id: str, svc: FlightService = Depends(_svc)):
    try:
        flight = await svc.get(flight_id)
    except InvalidEntityId as e:
        raise HTTPException(status_code=422, detail=str(e))
    if not flight:
        raise HTTPException(status_code=404, detail="Flight not found")
    return flight


@router.delete("/flights/{flight_id}", status_code=204)
async def delete_flight(flight_id: str, svc: FlightService = Depends(_svc)):
    try:
        deleted = await svc.delete(flight_id)
    except InvalidEntityId as e:
        raise HTTPException(status_code=422, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Flight not found")
    return Response(status_code=204)
