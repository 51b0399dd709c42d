"""Violation list filtering for the dashboard and exports."""
from datetime import datetime, timedelta
from typing import Optional

from sellerdash.schemas import Violation
from sellerdash.sheets.rows import parse_sheet_datetime

# Accepted time-filter keys and their human labels -> days back
RANGE_DAYS = {
    "7days": 7,
    "last 7 days": 7,
    "30days": 30,
    "last 30 days": 30,
    "90days": 90,
    "last 90 days": 90,
}
ALL_TIME = {"all", "all time", ""}


def range_days(time_filter: Optional[str]) -> Optional[int]:
    """Days covered by a time filter, or None for all time. Unknown values raise ValueError."""
    key = (time_filter or "").strip().lower()
    if key in ALL_TIME:
        return None
    if key not in RANGE_DAYS:
        raise ValueError(f"Unknown time filter: {time_filter}")
    return RANGE_DAYS[key]


def filter_by_date_range(violations: list[Violation], time_filter: Optional[str], now: datetime) -> list[Violation]:
    """Keep violations dated at or after the cutoff; undated ones drop out of a bounded range."""
    days = range_days(time_filter)
    if days is None:
        return list(violations)
    cutoff = now - timedelta(days=days)
    kept = []
    for v in violations:
        when = parse_sheet_datetime(v.date)
        if when is not None and when >= cutoff:
            kept.append(v)
    return kept


def filter_by_search(violations: list[Violation], search: str, extended: bool = False) -> list[Violation]:
    """Case-insensitive substring match on ASIN and title (plus reason and id when extended)."""
    needle = (search or "").strip().lower()
    if not needle:
        return list(violations)

    def haystack(v: Violation) -> tuple[str, ...]:
        if extended:
            return (v.asin, v.product_title, v.reason, v.id)
        return (v.asin, v.product_title)

    return [v for v in violations if any(needle in field.lower() for field in haystack(v))]


def filter_violations(
    violations: list[Violation],
    now: datetime,
    time_filter: str = "all",
    status: str = "all",
    search: str = "",
) -> list[Violation]:
    filtered = filter_by_date_range(violations, time_filter, now)
    if status and status != "all":
        filtered = [v for v in filtered if v.status.value == status]
    return filter_by_search(filtered, search)


def sort_newest_first(violations: list[Violation]) -> list[Violation]:
    """Newest violation date first; undated rows go last."""
    def key(v: Violation):
        when = parse_sheet_datetime(v.date)
        return (when is not None, when.timestamp() if when else 0.0)

    return sorted(violations, key=key, reverse=True)
