"""Tests for report statistics and trend points."""

from datetime import UTC, datetime

import pytest

from promptverse.domain.report_stats import compute_report_stats, trend_point

pytestmark = pytest.mark.unit


def _item(success: bool, *platforms: tuple[bool, bool, bool]) -> dict:
    return {
        "prompt": "best running shoes",
        "success": success,
        "response": [
            {"found": found, "details": {"websiteFound": website, "brandMentionFound": mention}}
            for found, website, mention in platforms
        ],
    }


class TestComputeReportStats:
    def test_empty_report(self):
        assert compute_report_stats([]) == {
            "totalPrompts": 0,
            "websiteFound": 0,
            "brandMentioned": 0,
            "totalFindings": 0,
            "successRate": 0,
        }

    def test_counts_per_platform_response(self):
        data = [
            _item(True, (True, True, False), (True, False, True)),
            _item(False, (False, False, False)),
            _item(True, (True, True, True)),
        ]
        stats = compute_report_stats(data)
        assert stats["totalPrompts"] == 3
        assert stats["websiteFound"] == 2
        assert stats["brandMentioned"] == 2
        assert stats["totalFindings"] == 3
        assert stats["successRate"] == 67

    def test_success_rate_rounds_half_up(self):
        data = [_item(True), _item(False), _item(False), _item(False), _item(False), _item(False), _item(False), _item(False)]
        # 1/8 = 12.5%
        assert compute_report_stats(data)["successRate"] == 13

    def test_malformed_items_skipped(self):
        data = [{"prompt": "x", "success": True, "response": None}, "garbage", {"response": ["nope"]}]
        stats = compute_report_stats(data)
        assert stats["totalPrompts"] == 3
        assert stats["totalFindings"] == 0
        assert stats["successRate"] == 33


class TestTrendPoint:
    def test_prefers_report_date(self):
        report_date = datetime(2024, 3, 1, tzinfo=UTC)
        created_at = datetime(2024, 3, 2, tzinfo=UTC)
        point = trend_point(report_date, created_at, {"websiteFound": 4, "successRate": 80})
        assert point == {
            "date": report_date.isoformat(),
            "websiteFound": 4,
            "brandMentioned": 0,
            "successRate": 80,
            "totalPrompts": 0,
        }

    def test_falls_back_to_created_at_without_stats(self):
        created_at = datetime(2024, 3, 2, tzinfo=UTC)
        point = trend_point(None, created_at, None)
        assert point["date"] == created_at.isoformat()
        assert point["totalPrompts"] == 0
