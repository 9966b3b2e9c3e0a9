from .user import User
from .mission import MissionTemplate, DailyMissionSet, DailyMissionItem
from .gamification_event import GamificationEvent
from .walk import WalkSession, WalkRoutePoint, WalkPoi

__all__ = [
    "User",
    "MissionTemplate",
    "DailyMissionSet",
    "DailyMissionItem",
    "GamificationEvent",
    "WalkSession",
    "WalkRoutePoint",
    "WalkPoi",
]
