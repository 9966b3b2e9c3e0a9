"""
Walk schemas.

POST  /walks                 WalkStartRequest    → WalkResponse
POST  /walks/{id}/route      RouteAppendRequest  → WalkResponse
PATCH /walks/{id}            WalkUpdateRequest   → WalkResponse
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RoutePointIn(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    timestamp: datetime = Field(description="ISO 8601; naive values are read as UTC.")
    accuracy: Optional[float] = Field(default=None, ge=0, description="Metres.")


class WalkStartRequest(BaseModel):
    pet_id: str = Field(min_length=1, max_length=64)
    start_time: Optional[datetime] = Field(default=None, description="Defaults to now.")
    title: Optional[str] = Field(default=None, max_length=256)


class RouteAppendRequest(BaseModel):
    points: list[RoutePointIn] = Field(
        default_factory=list,
        description="Samples in increasing timestamp order.",
    )


class WalkUpdateRequest(BaseModel):
    """Cosmetic fields only; accepted before and after completion."""
    title: Optional[str] = Field(default=None, max_length=256)
    notes: Optional[str] = None
    is_shared: Optional[bool] = None
    is_auto_completed: Optional[bool] = None


class RoutePointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lat: float
    lng: float
    timestamp: datetime
    accuracy: Optional[float] = None


class WalkPoiResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    place_id: str
    name: str
    type: str = Field(description='"park" | "vet" | "pet_store" | "water" | "groomer" | "boarding" | "other"')
    lat: float
    lng: float
    timestamp: datetime
    stopped_duration_s: float


class WalkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    pet_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    is_active: bool
    distance_m: float
    duration_s: float
    title: Optional[str] = None
    notes: Optional[str] = None
    is_auto_completed: bool
    is_shared: bool
    route: list[RoutePointResponse] = []
    pois: list[WalkPoiResponse] = []


class WalkSummaryResponse(BaseModel):
    """List item: no route payload."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    pet_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    is_active: bool
    distance_m: float
    duration_s: float
    title: Optional[str] = None
    is_shared: bool
