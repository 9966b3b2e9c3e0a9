"""
Walk sessions and their append-only route / discovered POIs.

distance_m / duration_s are caches: they are always recomputable from the
route and are rewritten on every append and on completion. `end_time` is
written only by the completion step; once set, the route is frozen.
"""
from __future__ import annotations

from datetime import datetime
import enum

from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class PoiType(str, enum.Enum):
    park = "park"
    vet = "vet"
    pet_store = "pet_store"
    water = "water"
    groomer = "groomer"
    boarding = "boarding"
    other = "other"


class WalkSession(Base):
    __tablename__ = "walk_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    pet_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    distance_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    duration_s: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Cosmetic, still editable after completion
    title: Mapped[str | None] = mapped_column(String(256), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_auto_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    route: Mapped[list["WalkRoutePoint"]] = relationship(
        back_populates="walk",
        order_by="WalkRoutePoint.position",
        cascade="all, delete-orphan",
    )
    pois: Mapped[list["WalkPoi"]] = relationship(
        back_populates="walk",
        order_by="WalkPoi.id",
        cascade="all, delete-orphan",
    )

    @property
    def is_active(self) -> bool:
        return self.end_time is None


class WalkRoutePoint(Base):
    __tablename__ = "walk_route_points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    walk_id: Mapped[int] = mapped_column(
        ForeignKey("walk_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True, comment="metres")

    walk: Mapped[WalkSession] = relationship(back_populates="route")


class WalkPoi(Base):
    __tablename__ = "walk_pois"
    __table_args__ = (
        UniqueConstraint("walk_id", "place_id", name="uq_walk_poi_place"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    walk_id: Mapped[int] = mapped_column(
        ForeignKey("walk_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    place_id: Mapped[str] = mapped_column(String(256), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default=PoiType.other.value)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    stopped_duration_s: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    walk: Mapped[WalkSession] = relationship(back_populates="pois")
