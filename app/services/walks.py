"""
Walk Session Manager.

Public API
----------
start_walk(db, owner_id, pet_id, start_time, title)            → WalkSession
get_walk(db, walk_id, owner_id)                                → WalkSession
list_walks(db, owner_id, pet_id, limit, offset)                → list[WalkSession]
append_route(db, walk_id, points, detector, owner_id, now)     → WalkSession
detect_and_record_poi(db, walk, center, route, detector, now)  → list[WalkPoi]
complete_walk(db, walk_id, owner_id, now)                      → WalkSession
update_walk_details(db, walk_id, owner_id, **fields)           → WalkSession
delete_walk(db, walk_id, owner_id)                             → None

State machine
-------------
  Active    --append-->    Active      (distance/duration recomputed, POIs detected)
  Active    --complete-->  Finalized   (milestone events registered once)
  Finalized --complete-->  Finalized   (no-op, returns the stored record)
  Finalized --append-->    WalkAlreadyCompletedError

Both transitions out of Active are guarded by `UPDATE ... WHERE end_time IS NULL`,
so an append that races a completion either lands before it or is rejected.

The distance/duration recompute is committed before the POI lookup starts;
a slow or failing lookup can only cost POIs, never the route.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.daykey import as_utc, day_key, previous_day_keys, utcnow
from app.core.errors import (
    CollaboratorUnavailableError,
    UserNotFoundError,
    ValidationError,
    WalkAlreadyCompletedError,
    WalkNotFoundError,
)
from app.models.walk import WalkPoi, WalkRoutePoint, WalkSession
from app.services import geo
from app.services.ledger import EventKey, RegisterResult, register_in_tx
from app.services.poi_detector import PoiLookup
from app.services.streaks import advance_streak

logger = logging.getLogger(__name__)

POI_SEARCH_RADIUS_M = 100.0
POI_STOP_RADIUS_M = 50.0
POI_MIN_STOP_S = 180.0
DISTANCE_MILESTONE_M = 1000.0
WALK_STREAK_DAYS = 3

_COSMETIC_FIELDS = ("title", "notes", "is_shared", "is_auto_completed")


# ---------------------------------------------------------------------------
# Read / create
# ---------------------------------------------------------------------------

def start_walk(
    db: Session,
    owner_id: str,
    pet_id: str,
    start_time: Optional[datetime] = None,
    title: Optional[str] = None,
) -> WalkSession:
    if not owner_id or not str(owner_id).strip():
        raise ValidationError("owner_id is required", field="owner_id")
    if not pet_id or not str(pet_id).strip():
        raise ValidationError("pet_id is required", field="pet_id")

    walk = WalkSession(
        owner_id=owner_id,
        pet_id=pet_id,
        start_time=as_utc(start_time) if start_time else utcnow(),
        title=title,
        distance_m=0.0,
        duration_s=0.0,
    )
    db.add(walk)
    db.commit()
    db.refresh(walk)
    logger.info("Walk started: id=%s owner=%s pet=%s", walk.id, owner_id, pet_id)
    return walk


def get_walk(db: Session, walk_id: int, owner_id: Optional[str] = None) -> WalkSession:
    """Fetch a walk; someone else's walk is indistinguishable from a missing one."""
    walk = db.get(WalkSession, walk_id)
    if walk is None or (owner_id is not None and walk.owner_id != owner_id):
        raise WalkNotFoundError(walk_id)
    return walk


def list_walks(
    db: Session,
    owner_id: str,
    pet_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[WalkSession]:
    q = select(WalkSession).where(WalkSession.owner_id == owner_id)
    if pet_id:
        q = q.where(WalkSession.pet_id == pet_id)
    q = q.order_by(WalkSession.start_time.desc(), WalkSession.id.desc()).offset(offset).limit(limit)
    return list(db.scalars(q).all())


# ---------------------------------------------------------------------------
# Route ingestion
# ---------------------------------------------------------------------------

def append_route(
    db: Session,
    walk_id: int,
    points: Sequence[geo.TrackPoint],
    detector: Optional[PoiLookup] = None,
    owner_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WalkSession:
    walk = get_walk(db, walk_id, owner_id)
    walk_pk = walk.id
    if not walk.is_active:
        raise WalkAlreadyCompletedError(walk_pk)

    existing = list(walk.route)
    position = existing[-1].position + 1 if existing else 0
    added = []
    for p in points:
        added.append(WalkRoutePoint(
            walk_id=walk_pk,
            position=position,
            lat=p.lat,
            lng=p.lng,
            timestamp=as_utc(p.timestamp),
            accuracy=p.accuracy,
        ))
        position += 1

    # Plain snapshot: stays readable after the commit expires the ORM rows
    route = [geo.TrackPoint(r.lat, r.lng, r.timestamp, r.accuracy) for r in existing + added]
    distance_m = geo.total_distance(route)
    duration_s = geo.total_duration(route)

    try:
        db.add_all(added)
        result = db.execute(
            update(WalkSession)
            .where(WalkSession.id == walk_pk, WalkSession.end_time.is_(None))
            .values(distance_m=distance_m, duration_s=duration_s, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise WalkAlreadyCompletedError(walk_pk)
        db.commit()
    except OperationalError as exc:
        db.rollback()
        raise CollaboratorUnavailableError("database") from exc

    logger.info(
        "Route appended: walk=%s +%d points, distance=%.1fm duration=%.0fs",
        walk_pk, len(added), distance_m, duration_s,
    )

    # No transaction is open here, so a slow lookup holds no database lock
    if added and detector is not None:
        last = route[-1]
        detect_and_record_poi(db, walk, geo.Coordinate(last.lat, last.lng), route, detector, now)
    db.refresh(walk)
    return walk


def detect_and_record_poi(
    db: Session,
    walk: WalkSession,
    center: geo.Coordinate,
    route: Sequence,
    detector: PoiLookup,
    now: Optional[datetime] = None,
) -> list[WalkPoi]:
    """
    Record every nearby place the walker actually stopped at.

    A place qualifies when the tail of the route stayed within
    POI_STOP_RADIUS_M of it for at least POI_MIN_STOP_S. Each new place
    is saved once per walk and earns EXPLORE_NEW_POI in the same commit.
    """
    if not route:
        return []

    candidates = detector.find_nearby(center.lat, center.lng, POI_SEARCH_RADIUS_M)
    if not candidates:
        return []
    # Completed while the lookup was in flight
    if not walk.is_active:
        db.rollback()
        return []

    walk_pk, owner_id = walk.id, walk.owner_id
    known = {p.place_id for p in walk.pois}
    stamp = as_utc(route[-1].timestamp)
    today = day_key(now)
    recorded: list[WalkPoi] = []
    credited: list[RegisterResult] = []
    claimed = False

    try:
        for candidate in candidates:
            if candidate.place_id in known:
                continue
            stopped_s = geo.stopped_duration(route, candidate, POI_STOP_RADIUS_M)
            if stopped_s < POI_MIN_STOP_S:
                continue

            if not claimed:
                # Locks the walk row until commit; complete_walk waits on it
                if not _touch_active_walk(db, walk_pk):
                    db.rollback()
                    logger.info("POI skipped: walk=%s completed during lookup", walk_pk)
                    return []
                claimed = True

            poi = WalkPoi(
                walk_id=walk_pk,
                place_id=candidate.place_id,
                name=candidate.name,
                type=candidate.type,
                lat=candidate.lat,
                lng=candidate.lng,
                timestamp=stamp,
                stopped_duration_s=stopped_s,
            )
            savepoint = db.begin_nested()
            try:
                db.add(poi)
                db.flush()
                savepoint.commit()
            except IntegrityError:
                # Recorded by a concurrent append of the same walk
                savepoint.rollback()
                known.add(candidate.place_id)
                continue

            known.add(candidate.place_id)
            recorded.append(poi)
            event = _register_walk_event(db, owner_id, EventKey.EXPLORE_NEW_POI,
                                         candidate.place_id, today)
            if event is not None:
                credited.append(event)

        db.commit()
    except OperationalError as exc:
        db.rollback()
        raise CollaboratorUnavailableError("database") from exc
    except Exception:
        db.rollback()
        raise

    for poi in recorded:
        logger.info("POI discovered: walk=%s place=%s (%s) stopped=%.0fs",
                    walk_pk, poi.place_id, poi.name, poi.stopped_duration_s)
    _advance_streak_if_credited(db, owner_id, credited, now)
    return recorded


def _touch_active_walk(db: Session, walk_pk: int) -> bool:
    result = db.execute(
        update(WalkSession)
        .where(WalkSession.id == walk_pk, WalkSession.end_time.is_(None))
        .values(updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Finalization
# ---------------------------------------------------------------------------

def complete_walk(
    db: Session,
    walk_id: int,
    owner_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WalkSession:
    walk = get_walk(db, walk_id, owner_id)
    if not walk.is_active:
        return walk

    now = as_utc(now) if now is not None else utcnow()
    route = list(walk.route)
    distance_m = geo.total_distance(route)
    duration_s = geo.total_duration(route)
    today = day_key(now)
    credited: list[RegisterResult] = []

    try:
        result = db.execute(
            update(WalkSession)
            .where(WalkSession.id == walk.id, WalkSession.end_time.is_(None))
            .values(end_time=now, distance_m=distance_m, duration_s=duration_s, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Finalized by a concurrent request
            db.rollback()
            db.refresh(walk)
            return walk

        target = str(walk.id)
        milestones = [(EventKey.WALK_COMPLETED, target)]
        if distance_m >= DISTANCE_MILESTONE_M:
            milestones.append((EventKey.WALK_DISTANCE_1KM, target))
        if _walked_on_consecutive_days(db, walk.owner_id, now, WALK_STREAK_DAYS):
            milestones.append((EventKey.WALK_STREAK_3, f"walks:{today}"))

        for event_key, target_id in milestones:
            event = _register_walk_event(db, walk.owner_id, event_key, target_id, today)
            if event is not None:
                credited.append(event)
        db.commit()
    except OperationalError as exc:
        db.rollback()
        raise CollaboratorUnavailableError("database") from exc
    except Exception:
        db.rollback()
        raise

    logger.info("Walk completed: id=%s distance=%.1fm duration=%.0fs events=%s",
                walk.id, distance_m, duration_s, [e.event_key for e in credited])
    _advance_streak_if_credited(db, walk.owner_id, credited, now)
    db.refresh(walk)
    return walk


def _walked_on_consecutive_days(db: Session, owner_id: str, now: datetime, days: int) -> bool:
    """True if the owner finalized a walk on each of the `days` day keys ending today."""
    wanted = set(previous_day_keys(now, days=days))
    since = now - timedelta(days=days + 1)
    end_times = db.scalars(
        select(WalkSession.end_time).where(
            WalkSession.owner_id == owner_id,
            WalkSession.end_time.is_not(None),
            WalkSession.end_time >= since,
        )
    ).all()
    walked = {day_key(ts) for ts in end_times}
    return wanted <= walked


# ---------------------------------------------------------------------------
# Cosmetic edits / delete
# ---------------------------------------------------------------------------

def update_walk_details(db: Session, walk_id: int, owner_id: Optional[str] = None, **fields) -> WalkSession:
    """Edit cosmetic fields. Allowed before and after completion."""
    unknown = set(fields) - set(_COSMETIC_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])

    walk = get_walk(db, walk_id, owner_id)
    for field, value in fields.items():
        if value is not None:
            setattr(walk, field, value)
    db.commit()
    db.refresh(walk)
    return walk


def delete_walk(db: Session, walk_id: int, owner_id: Optional[str] = None) -> None:
    """Remove a walk with its route and POIs. Ledger rows it produced are kept."""
    walk = get_walk(db, walk_id, owner_id)
    db.delete(walk)
    db.commit()
    logger.info("Walk deleted: id=%s", walk_id)


# ---------------------------------------------------------------------------
# Ledger glue
# ---------------------------------------------------------------------------

def _register_walk_event(
    db: Session,
    owner_id: str,
    event_key: str,
    target_id: str,
    date_key: str,
) -> Optional[RegisterResult]:
    try:
        result = register_in_tx(db, owner_id, event_key, target_id, date_key)
    except UserNotFoundError:
        logger.warning("Walk owner %s has no ledger record; %s not credited", owner_id, event_key)
        return None
    return None if result.duplicated else result


def _advance_streak_if_credited(
    db: Session,
    owner_id: str,
    credited: list[RegisterResult],
    now: Optional[datetime],
) -> None:
    if any(r.mission_completed for r in credited):
        advance_streak(db, owner_id, now)
