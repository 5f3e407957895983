"""Report statistics computed once from report_data.

Pure functions with no external dependencies.
"""

import math


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_report_stats(report_data: list[dict]) -> dict:
    """Aggregate counts over a report's clubbed responses.

    Each report_data item looks like::

        {"prompt": str, "success": bool,
         "response": [{"found": bool, "details": {"websiteFound": bool, "brandMentionFound": bool}}, ...]}

    Returns:
        {"totalPrompts", "websiteFound", "brandMentioned", "totalFindings", "successRate"}
        where successRate is the rounded percentage of items with success=True.
    """
    stats = {
        "totalPrompts": len(report_data),
        "websiteFound": 0,
        "brandMentioned": 0,
        "totalFindings": 0,
        "successRate": 0,
    }

    for item in report_data:
        responses = item.get("response") if isinstance(item, dict) else None
        if not isinstance(responses, list):
            continue
        for platform_data in responses:
            if not isinstance(platform_data, dict):
                continue
            details = platform_data.get("details") or {}
            if details.get("websiteFound"):
                stats["websiteFound"] += 1
            if details.get("brandMentionFound"):
                stats["brandMentioned"] += 1
            if platform_data.get("found"):
                stats["totalFindings"] += 1

    if stats["totalPrompts"] > 0:
        successful = sum(1 for item in report_data if isinstance(item, dict) and item.get("success"))
        stats["successRate"] = _round_half_up(successful / stats["totalPrompts"] * 100)

    return stats


def trend_point(report_date, created_at, stats: dict | None) -> dict:
    """One visibility-trend chart point for a completed report."""
    stats = stats or {}
    return {
        "date": (report_date or created_at).isoformat(),
        "websiteFound": stats.get("websiteFound", 0),
        "brandMentioned": stats.get("brandMentioned", 0),
        "successRate": stats.get("successRate", 0),
        "totalPrompts": stats.get("totalPrompts", 0),
    }
