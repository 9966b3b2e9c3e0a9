"""
Tests for the daily summary: balances, missions, bonus evaluation on
poll, 7-day history and level info.
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.daykey import day_key, previous_day_keys
from app.core.errors import UserNotFoundError
from app.services.ledger import register_event
from app.services.streaks import advance_streak
from app.services.summary import get_daily_summary

NOW = datetime(2043, 2, 11, 9, 0, tzinfo=timezone.utc)

ALL_DAILY = [
    ("SEARCH_PET_STORE", None),
    ("READ_ARTICLE", "article-1"),
    ("OPEN_EXPENSES_SUMMARY", None),
    ("WALK_COMPLETED", "walk-1"),
]


def _complete_day(db, uid, now):
    for event_key, target in ALL_DAILY:
        register_event(db, uid, event_key, target, day_key(now))


class TestDailySummary:
    def test_fresh_user(self, db, make_user):
        uid = make_user()
        summary = get_daily_summary(db, uid, NOW)
        assert summary["date_key"] == day_key(NOW)
        assert (summary["points"], summary["coins"], summary["daily_streak"]) == (0, 0, 0)
        assert len(summary["missions"]) == 4
        assert summary["all_missions_completed"] is False
        assert summary["bonuses_awarded_today"] == []
        assert summary["level"]["level"] == 0
        assert summary["level"]["rank"] == "wood"

    def test_unknown_user(self, db):
        with pytest.raises(UserNotFoundError):
            get_daily_summary(db, "ghost-user", NOW)

    def test_daily_completion_bonus_flagged_once(self, db, make_user):
        uid = make_user()
        _complete_day(db, uid, NOW)

        first = get_daily_summary(db, uid, NOW)
        assert first["all_missions_completed"] is True
        assert first["points"] == 3 + 5 + 4 + 10 + 5
        assert first["bonuses_awarded_today"] == [
            {
                "event_key": "DAILY_COMPLETION_BONUS",
                "target_id": f"day:{day_key(NOW)}",
                "points": 5,
                "newly_awarded": True,
                "created_at": first["bonuses_awarded_today"][0]["created_at"],
            }
        ]

        second = get_daily_summary(db, uid, NOW)
        assert second["points"] == first["points"]
        assert [b["newly_awarded"] for b in second["bonuses_awarded_today"]] == [False]

    def test_last_7_days_history(self, db, make_user):
        uid = make_user()
        yesterday = NOW - timedelta(days=1)
        _complete_day(db, uid, yesterday)
        register_event(db, uid, "READ_ARTICLE", "article-2", day_key(NOW))

        history = get_daily_summary(db, uid, NOW)["last_7_days"]
        assert [h["date_key"] for h in history] == previous_day_keys(NOW, days=7)
        today, prev = history[0], history[1]
        assert (today["total"], today["completed"], today["all_done"]) == (4, 1, False)
        assert (prev["total"], prev["completed"], prev["all_done"]) == (4, 4, True)
        assert all(h["total"] == 0 and not h["all_done"] for h in history[2:])

    def test_weekly_perfect_bonus_on_poll(self, db, make_user):
        uid = make_user(daily_streak=7, last_daily_at=NOW)
        for offset in range(7):
            _complete_day(db, uid, NOW - timedelta(days=offset))

        summary = get_daily_summary(db, uid, NOW)
        awarded = {b["event_key"]: b for b in summary["bonuses_awarded_today"]}
        assert awarded["WEEKLY_PERFECT_BONUS"]["points"] == 30
        assert awarded["WEEKLY_PERFECT_BONUS"]["newly_awarded"] is True
        assert awarded["DAILY_COMPLETION_BONUS"]["newly_awarded"] is True
        # 7 days x 22 mission points, +5 daily completion, +30 weekly perfect
        assert summary["points"] == 7 * 22 + 5 + 30

    def test_level_reflects_points(self, db, make_user):
        uid = make_user(points=130, coins=130)
        level = get_daily_summary(db, uid, NOW)["level"]
        assert level["level"] == 2
        assert level["points_to_next_level"] == 225 - 130

    def test_streak_bonus_listed_on_the_day_it_was_earned(self, db, make_user):
        uid = make_user(daily_streak=6, last_daily_at=NOW - timedelta(days=1))
        advance_streak(db, uid, NOW)
        bonuses = get_daily_summary(db, uid, NOW)["bonuses_awarded_today"]
        assert [(b["event_key"], b["newly_awarded"]) for b in bonuses] == [("STREAK_7_BONUS", False)]

    def test_bonuses_from_earlier_days_not_listed(self, db, make_user):
        uid = make_user(daily_streak=6, last_daily_at=NOW - timedelta(days=2))
        advance_streak(db, uid, NOW - timedelta(days=1))

        summary = get_daily_summary(db, uid, NOW)
        assert summary["bonuses_awarded_today"] == []
        assert summary["points"] == 15
