"""Headline metrics and labels shared by the PDF reports."""
from dataclasses import dataclass
from datetime import datetime, timedelta

from sellerdash.schemas import Violation, ViolationStatus
from sellerdash.services.filters import range_days
from sellerdash.sheets.rows import parse_sheet_datetime

DOCUMENT_REQUIREMENTS = {
    "Invoice": (
        "Invoice",
        [
            "Must cover the last 365 days of sales",
            "Must be dated before the violation date",
            "Must be authentic and unaltered",
            "Must clearly show supplier name, address, and contact info",
            "Must list the ASIN/product and quantities purchased",
        ],
    ),
    "LOA": (
        "Letter of Authorization (LOA)",
        [
            "Must be on official company letterhead from the brand owner",
            "Must explicitly authorize you to sell the product on Amazon",
            "Must include the brand owner's contact information",
            "Must be signed and dated",
            "Must reference the specific products or ASIN(s)",
        ],
    ),
    "Safety Cert": (
        "Safety Certification",
        [
            "Must be from an accredited testing laboratory",
            "Must be valid and not expired",
            "Must reference the specific product or ASIN",
            "Must show compliance with applicable safety standards",
        ],
    ),
    "Lab Report": (
        "Laboratory Test Report",
        [
            "Must be from an ISO 17025 accredited laboratory",
            "Must verify product compliance with safety standards",
            "Must reference the specific product or ASIN tested",
            "Must include test date and report number",
        ],
    ),
}


@dataclass(frozen=True)
class Metric:
    label: str
    value: str
    sub_label: str


def format_currency(amount: float) -> str:
    return f"${amount:,.0f}"


def format_date(raw: str) -> str:
    when = parse_sheet_datetime(raw)
    if when is None:
        return raw or "-"
    return when.strftime("%m/%d/%Y")


def truncate(text: str, max_length: int) -> str:
    if not text:
        return "-"
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def date_range_label(time_filter: str, now: datetime) -> str:
    days = range_days(time_filter)
    if days is None:
        return "All Time"
    start = now - timedelta(days=days)
    return f"{start:%B} {start.day}, {start.year} - {now:%B} {now.day}, {now.year}"


def summarize(violations: list[Violation], tab: str, now: datetime) -> list[Metric]:
    """Four headline metrics for the report header, depending on the tab exported."""
    resolved = [v for v in violations if v.status == ViolationStatus.RESOLVED]
    active = [v for v in violations if v.status != ViolationStatus.RESOLVED]

    if tab == "resolved":
        saved = sum(v.at_risk_sales for v in resolved)
        asins = {v.asin for v in resolved if v.asin}
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        this_month = 0
        for v in resolved:
            when = parse_sheet_datetime(v.date_resolved)
            if when is not None and when >= month_start:
                this_month += 1
        return [
            Metric("Total Resolved", str(len(resolved)), "This Period"),
            Metric("Revenue Protected", format_currency(saved), "At-Risk Saved"),
            Metric("ASINs Protected", str(len(asins)), "Unique Products"),
            Metric("This Month", str(this_month), "Recently Resolved"),
        ]

    at_risk = sum(v.at_risk_sales for v in active)
    high = sum(1 for v in active if v.ahr_impact == "High")
    return [
        Metric("Open Violations", str(len(active)), "Currently Active"),
        Metric("At Risk Sales", format_currency(at_risk), "Potential Impact"),
        Metric("High Impact", str(high), "Require Attention"),
        Metric("Total Resolved", str(len(resolved)), "All Time"),
    ]


def violations_with_docs(violations: list[Violation]) -> list[Violation]:
    return [v for v in violations if v.docs_needed]
