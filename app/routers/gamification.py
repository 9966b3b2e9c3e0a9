"""
Gamification router.

POST /gamification/events    - register an action (once per day per target)
GET  /gamification/summary   - balances, missions, bonuses, history, level
GET  /gamification/missions  - one day's mission set
GET  /gamification/ledger    - the caller's ledger rows (paginated, newest first)
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.daykey import day_key
from app.core.errors import NotFoundError
from app.db.base import get_db
from app.models.gamification_event import GamificationEvent
from app.routers.deps import current_user_id
from app.schemas.common import error_responses
from app.schemas.gamification import (
    DailyMissionSetResponse,
    DailySummaryResponse,
    LedgerEventResponse,
    LedgerListResponse,
    RegisterEventRequest,
    RegisterEventResponse,
)
from app.services.ledger import list_events
from app.services.missions import ensure_daily_missions, get_daily_missions
from app.services.streaks import register_gamification_event
from app.services.summary import mission_dict, get_daily_summary

router = APIRouter(prefix="/gamification", tags=["gamification"])


def _event_to_response(ev: GamificationEvent) -> LedgerEventResponse:
    return LedgerEventResponse(
        id=ev.id,
        event_key=ev.event_key,
        target_id=ev.target_id,
        date_key=ev.date_key,
        points_awarded=ev.points_awarded,
        created_at=ev.created_at.isoformat() if ev.created_at else "",
    )


# ---------------------------------------------------------------------------
# POST /gamification/events
# ---------------------------------------------------------------------------

@router.post(
    "/events",
    response_model=RegisterEventResponse,
    summary="Register a gamified action",
    responses={
        200: {"description": "Registered, or recognised as a duplicate (`duplicated: true`)."},
        **error_responses({
            404: "Unknown user.",
            503: "Ledger store temporarily unavailable; safe to retry.",
        }),
    },
)
def register_event(
    payload: RegisterEventRequest,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    """
    Credits the first open mission the event maps to and adds its points.

    Retrying is always safe: the second call for the same
    (user, event, target, day) returns `duplicated: true` and `points_added: 0`.
    """
    result, streak = register_gamification_event(
        db, user_id, payload.event_key.strip(), payload.target_id
    )
    return RegisterEventResponse(
        duplicated=result.duplicated,
        points_added=result.points_added,
        event_key=result.event_key,
        target_id=result.target_id,
        date_key=result.date_key,
        mission_completed=result.mission_completed,
        daily_streak=streak.daily_streak if streak is not None else None,
    )


# ---------------------------------------------------------------------------
# GET /gamification/summary
# ---------------------------------------------------------------------------

@router.get(
    "/summary",
    response_model=DailySummaryResponse,
    summary="Daily gamification summary",
)
def summary(
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    """
    Also evaluates the daily-completion (+5) and weekly-perfect (+30)
    bonuses. Each is awarded at most once; `newly_awarded` marks the poll
    that awarded it.
    """
    return get_daily_summary(db, user_id)


# ---------------------------------------------------------------------------
# GET /gamification/missions
# ---------------------------------------------------------------------------

@router.get(
    "/missions",
    response_model=DailyMissionSetResponse,
    summary="Mission set for one day",
    responses=error_responses({404: "No mission set for that past day."}),
)
def missions(
    date_key: Optional[str] = Query(
        default=None,
        pattern=r"^\d{4}-\d{2}-\d{2}$",
        description="YYYY-MM-DD in the service's day-key timezone. Defaults to today.",
        examples=["2026-10-19"],
    ),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    """Today's set is created on first access; past days are read-only."""
    today = day_key()
    if date_key is None or date_key == today:
        mission_set = ensure_daily_missions(db, user_id, today)
    else:
        mission_set = get_daily_missions(db, user_id, date_key)
        if mission_set is None:
            raise NotFoundError(f"No missions for {date_key}.", details={"date_key": date_key})
    return DailyMissionSetResponse(
        user_id=user_id,
        date_key=mission_set.date_key,
        all_completed=mission_set.all_completed,
        missions=[mission_dict(m) for m in mission_set.missions],
    )


# ---------------------------------------------------------------------------
# GET /gamification/ledger
# ---------------------------------------------------------------------------

@router.get(
    "/ledger",
    response_model=LedgerListResponse,
    summary="The caller's ledger rows (newest first)",
)
def ledger(
    event_key: Optional[str] = Query(default=None, description="Filter by event key."),
    limit: int = Query(default=50, ge=1, le=200, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    total, items = list_events(db, user_id, event_key=event_key, limit=limit, offset=offset)
    return LedgerListResponse(total=total, items=[_event_to_response(e) for e in items])
