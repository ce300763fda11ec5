"""
tests/test_badges.py — Badge Threshold Evaluation
==================================================

Pure tests for the qualifying rules in fellowship.engine.badges.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from fellowship.engine.badges import (
    BadgeDefinition,
    CriteriaType,
    criteria_types_needed,
    qualifying_badges,
    unearned_badges,
)


def _badge(id: int, criteria: str, value: int, name: str | None = None) -> BadgeDefinition:
    return BadgeDefinition(
        id=id, name=name or f"badge_{id}", criteria_type=criteria, criteria_value=value,
    )


CATALOG = [
    _badge(1, CriteriaType.VERSE_SAVE, 1),
    _badge(2, CriteriaType.VERSE_SAVE, 25),
    _badge(3, CriteriaType.STREAK_DAYS, 7),
    _badge(4, CriteriaType.FRIEND_COUNT, 10),
    _badge(5, CriteriaType.FIRST_ACTION, 1),
]


class TestQualifyingBadges:
    def test_threshold_is_inclusive(self):
        got = qualifying_badges(CATALOG, {CriteriaType.STREAK_DAYS: 7})
        assert [b.id for b in got] == [3]

    def test_one_below_threshold_does_not_qualify(self):
        assert qualifying_badges(CATALOG, {CriteriaType.STREAK_DAYS: 6}) == []

    def test_missing_count_is_zero(self):
        assert qualifying_badges(CATALOG, {}) == []

    def test_multiple_thresholds_same_type(self):
        got = qualifying_badges(CATALOG, {CriteriaType.VERSE_SAVE: 30})
        assert [b.id for b in got] == [1, 2]

    def test_first_action_flag(self):
        assert [b.id for b in qualifying_badges(CATALOG, {"first_action": 1})] == [5]
        assert qualifying_badges(CATALOG, {"first_action": 0}) == []

    def test_unknown_criteria_never_qualifies(self):
        odd = [_badge(9, "prayer_minutes", 1)]
        assert qualifying_badges(odd, {"verse_save": 100}) == []

    def test_keeps_catalog_order(self):
        counts = {CriteriaType.VERSE_SAVE: 1, CriteriaType.FRIEND_COUNT: 12,
                  CriteriaType.FIRST_ACTION: 1}
        assert [b.id for b in qualifying_badges(CATALOG, counts)] == [1, 4, 5]


class TestCatalogHelpers:
    def test_unearned_filters_earned_ids(self):
        assert [b.id for b in unearned_badges(CATALOG, {1, 3})] == [2, 4, 5]

    def test_unearned_with_nothing_earned(self):
        assert unearned_badges(CATALOG, set()) == CATALOG

    def test_criteria_types_needed_is_distinct_and_ordered(self):
        assert criteria_types_needed(CATALOG) == [
            "verse_save", "streak_days", "friend_count", "first_action",
        ]

    def test_criteria_types_needed_empty(self):
        assert criteria_types_needed([]) == []


class TestBadgeDefinition:
    def test_from_row(self):
        row = MagicMock()
        row.id = 7
        row.name = "Faithful Week"
        row.description = None
        row.icon_code = "flame"
        row.criteria_type = "streak_days"
        row.criteria_value = "7"
        badge = BadgeDefinition.from_row(row)
        assert badge.criteria_value == 7
        assert badge.description == ""
        assert badge.to_dict() == {
            "id": 7,
            "name": "Faithful Week",
            "description": "",
            "icon_code": "flame",
            "criteria_type": "streak_days",
            "criteria_value": 7,
        }
