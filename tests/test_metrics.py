"""Tests for progress, state buckets and release health."""

import pytest

from release_board.config import HealthStatus, StateBucket
from release_board.releases.domain import (
    BoardConfig, MetricsEngine, ReleaseEpic, ReleaseMetrics, WorkItemNode, unique_by_id,
)


class TestProgressPercent:

    @pytest.mark.parametrize("completed,total,expected", [
        (0, 0, 0),
        (0, 4, 0),
        (1, 3, 33),
        (2, 3, 67),
        (1, 2, 50),
        (1, 8, 13),
        (4, 4, 100),
    ])
    def test_rounds_half_up(self, completed, total, expected):
        assert MetricsEngine.progress_percent(completed, total) == expected

    def test_epic_progress_is_derived_from_counts(self):
        epic = ReleaseEpic(id=10, version="v1.0", status="Active", completed_items=1, total_items=3)
        assert epic.progress == 33

    def test_epic_rejects_more_completed_than_total(self):
        with pytest.raises(ValueError):
            ReleaseEpic(id=10, version="v1.0", status="Active", completed_items=4, total_items=3)


class TestClassifyState:

    @pytest.mark.parametrize("state,bucket", [
        ("Done", StateBucket.COMPLETED),
        ("Ready For Release", StateBucket.COMPLETED),
        ("UAT - Test Done", StateBucket.COMPLETED),
        ("Committed", StateBucket.IN_PROGRESS),
        ("UAT - Ready For Test", StateBucket.IN_PROGRESS),
        ("Blocked", StateBucket.BLOCKED),
        ("New", StateBucket.NOT_STARTED),
        ("Removed", StateBucket.NOT_STARTED),
        (None, StateBucket.NOT_STARTED),
    ])
    def test_buckets(self, state, bucket):
        assert MetricsEngine.classify_state(state) == bucket

    def test_matching_is_exact(self):
        assert MetricsEngine.classify_state("done") == StateBucket.NOT_STARTED


class TestHealthStatus:

    def test_missing_metrics_is_on_track(self):
        assert MetricsEngine.health_status(None) == HealthStatus.ON_TRACK

    def test_blocked_wins_over_everything(self):
        metrics = ReleaseMetrics(total_features=10, completed_features=9, blocked_features=1)
        assert MetricsEngine.health_status(metrics) == HealthStatus.BLOCKED

    def test_low_completion_and_little_in_progress_is_at_risk(self):
        metrics = ReleaseMetrics(total_features=10, completed_features=4, in_progress_features=4)
        assert MetricsEngine.health_status(metrics) == HealthStatus.AT_RISK

    def test_half_in_progress_is_on_track(self):
        metrics = ReleaseMetrics(total_features=10, completed_features=4, in_progress_features=5)
        assert MetricsEngine.health_status(metrics) == HealthStatus.ON_TRACK

    def test_uses_unrounded_completion(self):
        # 49.75% displays as 50 but is still below the threshold
        metrics = ReleaseMetrics(total_features=400, completed_features=199, in_progress_features=0)
        assert metrics.completion_percent == 50
        assert MetricsEngine.health_status(metrics) == HealthStatus.AT_RISK

    def test_empty_release_is_on_track(self):
        assert MetricsEngine.health_status(ReleaseMetrics()) == HealthStatus.ON_TRACK


class TestBoardConfig:

    def test_defaults(self):
        config = BoardConfig()
        assert config.is_uat_ready("UAT - Ready For Test")
        assert not config.is_uat_ready("Done")
        assert config.propagates("Epic")
        assert config.propagates("Feature")
        assert not config.propagates("Bug")

    def test_rejects_empty_alias_list(self):
        with pytest.raises(ValueError):
            BoardConfig(uat_ready_aliases=["", "  "])


def test_unique_by_id_keeps_first_occurrence():
    items = [
        WorkItemNode(id=1, title="a", work_item_type="Bug", state="New"),
        WorkItemNode(id=2, title="b", work_item_type="Bug", state="New"),
        WorkItemNode(id=1, title="c", work_item_type="Bug", state="Done"),
    ]
    result = unique_by_id(items)
    assert [item.id for item in result] == [1, 2]
    assert result[0].title == "a"
