"""Track API routes.

Routes handle HTTP concerns (status codes, error responses); TrackService
holds the logic. Appending through PATCH has the same semantics as a bus
location update but does not notify live viewers.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from dronebridge.db.engine import get_db
from dronebridge.schemas.track import TrackAppend, TrackCreate, TrackRead
from dronebridge.services.errors import EntityNotFound, InvalidEntityId
from dronebridge.services.track_service import TrackService

router = APIRouter()


def _svc(db: AsyncSession = Depends(get_db)) -> TrackService:
    return TrackService(db)


def _invalid(e: InvalidEntityId) -> HTTPException:
    return HTTPException(status_code=422, detail=str(e))


@router.post("/tracks", response_model=TrackRead, status_code=201)
async def create_track(body: TrackCreate, svc: TrackService = Depends(_svc)):
    return await svc.create(body.coordinates, total_points=body.total_points)


@router.get("/tracks/latest", response_model=TrackRead)
async def latest_track(svc: TrackService = Depends(_svc)):
    track = await svc.get_latest()
    if not track:
        raise HTTPException(status_code=404, detail="No tracks yet")
    return track


@router.get("/tracks/{track_id}", response_model=TrackRead)
async def get_track(track_id: str, svc: TrackService = Depends(_svc)):
    try:
        track = await svc.get(track_id)
    except InvalidEntityId as e:
        raise _invalid(e)
    if not track:
        raise HTTPException(status_code=404, detail="Track not found")
    return track


@router.put("/tracks/{track_id}", response_model=TrackRead)
async def replace_track(
    track_id: str,
    body: TrackCreate,
    svc: TrackService = Depends(_svc),
):
    try:
        return await svc.replace(track_id, body.coordinates, body.total_points)
    except InvalidEntityId as e:
        raise _invalid(e)
    except EntityNotFound:
        raise HTTPException(status_code=404, detail="Track not found")


@router.patch("/tracks/{track_id}", response_model=TrackRead)
async def append_coordinates(
    track_id: str,
    body: TrackAppend,
    svc: TrackService = Depends(_svc),
):
    try:
        await svc.append_coordinates(track_id, body.coordinates_to_add)
    except InvalidEntityId as e:
        raise _invalid(e)
    except EntityNotFound:
        raise HTTPException(status_code=404, detail="Track not found")
    return await svc.get(track_id)


@router.delete("/tracks/{track_id}", status_code=204)
async def delete_track(track_id: str, svc: TrackService = Depends(_svc)):
    try:
        deleted = await svc.delete(track_id)
    except InvalidEntityId as e:
        raise _invalid(e)
    if not deleted:
        raise HTTPException(status_code=404, detail="Track not found")
    return Response(status_code=204)
