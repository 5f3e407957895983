"""CloudWatch custom metrics for billing and report business events.

Emission is fire-and-forget: boto3 is synchronous, so put_metric_data runs on a
small thread pool, and any failure is logged as a warning and swallowed. When
``metrics_enabled`` is off nothing is sent.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import boto3
import structlog

from promptverse.core.config import get_settings

logger = structlog.get_logger(__name__)

NAMESPACE = "PromptVerse/Business"

_cw_client = None
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="cw-metrics")


def _get_client():
    global _cw_client
    if _cw_client is None:
        _cw_client = boto3.client("cloudwatch", region_name=get_settings().metrics_region)
    return _cw_client


def _put_business_event(event_name: str, user_id: str | None = None, value: float = 1.0) -> None:
    """Synchronous put_metric_data for a business event. Runs in thread pool."""
    dimensions = [{"Name": "Event", "Value": event_name}]
    if user_id:
        dimensions.append({"Name": "UserId", "Value": user_id})
    try:
        _get_client().put_metric_data(
            Namespace=NAMESPACE,
            MetricData=[{
                "MetricName": "EventCount",
                "Dimensions": dimensions,
                "Value": value,
                "Unit": "Count",
                "Timestamp": datetime.now(timezone.utc),
            }],
        )
    except Exception as e:
        logger.warning("business_event_emit_failed", error=str(e), event=event_name)


async def emit_business_event(event_name: str, user_id: str | None = None, value: float = 1.0) -> None:
    """Emit a business event metric. Non-blocking, fire-and-forget."""
    if not get_settings().metrics_enabled:
        return
    loop = asyncio.get_running_loop()
    loop.run_in_executor(_executor, _put_business_event, event_name, user_id, value)
