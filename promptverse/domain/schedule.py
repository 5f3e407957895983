"""Scheduled-prompt date arithmetic and prompt sequencing.

Pure functions with no external dependencies.

``next_run`` is always rebuilt from the actual completion time. A completion
signal that arrives late moves the whole future cadence forward instead of
catching up against the previously planned ``next_run``.
"""

from datetime import UTC, datetime, timedelta

FREQUENCIES = ("daily", "weekly", "monthly")
DEFAULT_FREQUENCY = "daily"


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def add_calendar_month(value: datetime) -> datetime:
    """Same day-of-month in the next calendar month, rolling over on overflow.

    A day that does not exist in the target month spills into the month after,
    so 2024-01-31 becomes 2024-03-02 and 2023-01-31 becomes 2023-03-03.
    Time of day is preserved.
    """
    year, month = value.year, value.month + 1
    if month > 12:
        year, month = year + 1, 1
    first_of_month = value.replace(year=year, month=month, day=1)
    return first_of_month + timedelta(days=value.day - 1)


def compute_next_run(last_run: datetime, frequency: str | None) -> datetime:
    """Compute the next due time from the last completed run.

    Args:
        last_run: When the last run completed
        frequency: "daily", "weekly" or "monthly"; anything else is treated as daily

    Returns:
        Aware UTC datetime of the next run
    """
    last_run = as_utc(last_run)
    if frequency == "weekly":
        return last_run + timedelta(days=7)
    if frequency == "monthly":
        return add_calendar_month(last_run)
    return last_run + timedelta(days=1)


def initial_next_run(now: datetime) -> datetime:
    """First due time for a freshly stored schedule: 24 hours out."""
    return as_utc(now) + timedelta(days=1)


def is_due(is_active: bool, next_run: datetime | None, now: datetime) -> bool:
    """A schedule is due when active and its next_run is unset or not in the future."""
    if not is_active:
        return False
    if next_run is None:
        return True
    return as_utc(next_run) <= as_utc(now)


def resequence_prompts(prompts: list[dict]) -> list[dict]:
    """Copy prompts with ``promptIndex`` set to array position.

    Any client-supplied ``promptIndex`` is discarded.
    """
    resequenced = []
    for index, prompt in enumerate(prompts):
        item = dict(prompt)
        item["promptIndex"] = index
        resequenced.append(item)
    return resequenced
