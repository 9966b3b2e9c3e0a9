"""
Walks router.

POST   /walks                - start a walk
GET    /walks                - list the caller's walks (newest first)
GET    /walks/{id}           - one walk with route and POIs
POST   /walks/{id}/route     - append GPS samples
POST   /walks/{id}/complete  - finalize (idempotent)
PATCH  /walks/{id}           - edit cosmetic fields
DELETE /walks/{id}           - delete
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.routers.deps import current_user_id
from app.schemas.common import error_responses
from app.schemas.walks import (
    RouteAppendRequest,
    WalkResponse,
    WalkStartRequest,
    WalkSummaryResponse,
    WalkUpdateRequest,
)
from app.services import walks as walk_service
from app.services.geo import TrackPoint
from app.services.poi_detector import PoiDetector, get_poi_detector

router = APIRouter(prefix="/walks", tags=["walks"])

_NOT_FOUND = error_responses({404: "Walk not found (or owned by someone else)."})


@router.post(
    "",
    response_model=WalkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a walk",
)
def start_walk(
    payload: WalkStartRequest,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return walk_service.start_walk(
        db,
        owner_id=user_id,
        pet_id=payload.pet_id,
        start_time=payload.start_time,
        title=payload.title,
    )


@router.get(
    "",
    response_model=list[WalkSummaryResponse],
    summary="List the caller's walks",
)
def list_walks(
    pet_id: Optional[str] = Query(default=None, description="Only this pet's walks."),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return walk_service.list_walks(db, owner_id=user_id, pet_id=pet_id, limit=limit, offset=offset)


@router.get(
    "/{walk_id}",
    response_model=WalkResponse,
    summary="Get one walk",
    responses=_NOT_FOUND,
)
def get_walk(
    walk_id: int,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return walk_service.get_walk(db, walk_id, owner_id=user_id)


@router.post(
    "/{walk_id}/route",
    response_model=WalkResponse,
    summary="Append GPS samples to an active walk",
    responses={
        **_NOT_FOUND,
        **error_responses({409: "Walk is already completed."}),
    },
)
def append_route(
    walk_id: int,
    payload: RouteAppendRequest,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
    detector: PoiDetector = Depends(get_poi_detector),
):
    """
    Appends the samples, recomputes distance and duration from the whole
    route, then looks for places within 100 m of the last sample that the
    walker stayed near for at least 3 minutes.

    POI lookup failures never fail this request.
    """
    points = [
        TrackPoint(lat=p.lat, lng=p.lng, timestamp=p.timestamp, accuracy=p.accuracy)
        for p in payload.points
    ]
    return walk_service.append_route(db, walk_id, points, detector, owner_id=user_id)


@router.post(
    "/{walk_id}/complete",
    response_model=WalkResponse,
    summary="Finalize a walk",
    responses=_NOT_FOUND,
)
def complete_walk(
    walk_id: int,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    """Idempotent: completing a finished walk returns it unchanged and credits nothing."""
    return walk_service.complete_walk(db, walk_id, owner_id=user_id)


@router.patch(
    "/{walk_id}",
    response_model=WalkResponse,
    summary="Edit title, notes or sharing flags",
    responses=_NOT_FOUND,
)
def update_walk(
    walk_id: int,
    payload: WalkUpdateRequest,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return walk_service.update_walk_details(
        db, walk_id, owner_id=user_id, **payload.model_dump(exclude_unset=True)
    )


@router.delete(
    "/{walk_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a walk",
    responses=_NOT_FOUND,
)
def delete_walk(
    walk_id: int,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    walk_service.delete_walk(db, walk_id, owner_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
