"""
Gamification schemas.

POST /gamification/events    → RegisterEventResponse
GET  /gamification/summary   → DailySummaryResponse
GET  /gamification/missions  → DailyMissionSetResponse
GET  /gamification/ledger    → LedgerListResponse
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RegisterEventRequest(BaseModel):
    event_key: str = Field(min_length=1, max_length=64, examples=["READ_ARTICLE"])
    target_id: Optional[str] = Field(
        default=None,
        max_length=256,
        description="What the action was about (article id, walk id, ...). Omit for untargeted actions.",
    )


class RegisterEventResponse(BaseModel):
    duplicated: bool = Field(description="True when this (user, event, target, day) was already credited.")
    points_added: int
    event_key: str
    target_id: Optional[str] = None
    date_key: Optional[str] = None
    mission_completed: Optional[str] = Field(default=None, description="Template key of the completed mission.")
    daily_streak: Optional[int] = Field(default=None, description="Set when this event advanced the streak.")


class MissionItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    position: int
    template_key: str
    title: str
    points: int
    completed: bool
    completed_at: Optional[str] = None


class DailyMissionSetResponse(BaseModel):
    user_id: str
    date_key: str
    all_completed: bool
    missions: list[MissionItemResponse]


class BonusResponse(BaseModel):
    event_key: str
    target_id: Optional[str] = None
    points: int
    newly_awarded: bool = Field(description="True only on the poll that awarded it.")
    created_at: Optional[str] = None


class DayHistoryResponse(BaseModel):
    date_key: str
    total: int
    completed: int
    all_done: bool


class LevelResponse(BaseModel):
    level: int
    rank: str = Field(description='"wood" | "bronze" | "silver" | "gold" | "diamond" | "legendary"')
    rank_name: str
    rank_color: str
    rank_icon: str
    points_in_current_level: int
    points_to_next_level: int
    progress: float


class DailySummaryResponse(BaseModel):
    user_id: str
    date_key: str
    points: int
    coins: int
    daily_streak: int
    missions: list[MissionItemResponse]
    all_missions_completed: bool
    bonuses_awarded_today: list[BonusResponse]
    last_7_days: list[DayHistoryResponse]
    level: LevelResponse


class LedgerEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_key: str
    target_id: Optional[str] = None
    date_key: Optional[str] = None
    points_awarded: int
    created_at: str


class LedgerListResponse(BaseModel):
    total: int
    items: list[LedgerEventResponse]
