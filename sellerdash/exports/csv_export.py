"""CSV export of violation lists."""
import csv
import io
import re
from datetime import date

from sellerdash.schemas import Violation

CSV_HEADERS = [
    "ASIN",
    "Product Title",
    "Issue Type",
    "At Risk Sales",
    "Impact",
    "Status",
    "Date Opened",
    "Action Taken",
    "Next Steps",
    "Notes",
]


def export_filename(subdomain: str, tab: str, kind: str, ext: str, today: date) -> str:
    safe = re.sub(r"[^a-zA-Z0-9-]", "", subdomain)
    return f"{safe}-{tab}-{kind}-{today.isoformat()}.{ext}"


def violations_to_csv(violations: list[Violation]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADERS)
    for v in violations:
        writer.writerow([
            v.asin,
            v.product_title,
            v.reason,
            f"{v.at_risk_sales:.2f}",
            v.ahr_impact,
            v.status.value,
            v.date,
            v.action_taken,
            v.next_steps,
            v.notes,
        ])
    return output.getvalue()
