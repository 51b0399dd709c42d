"""Row-to-record mapping for the master tab and per-tenant violation tabs."""
import re
from datetime import datetime, timezone
from typing import Optional

from sellerdash.schemas import AhrImpact, Tenant, Violation, ViolationStatus

# Master tab columns (All Seller Information)
M_STORE_NAME = 0       # A
M_MERCHANT_ID = 1      # B
M_EMAIL = 2            # C
M_SHEET_URL = 3        # D
M_TOTAL = 4            # E
M_LAST_7_DAYS = 5      # F
M_LAST_2_DAYS = 6      # G
M_AT_RISK_SALES = 7    # H
M_HIGH_IMPACT = 8      # I
M_RESOLVED = 9         # J
M_SUBDOMAIN = 11       # L
M_DOC_FOLDER = 13      # N

# Violation tab columns
V_ID = 0               # A
V_IMPORTED_AT = 1      # B
V_REASON = 2           # C
V_DATE = 3             # D
V_ASIN = 4             # E
V_TITLE = 5            # F
V_AT_RISK_SALES = 6    # G
V_ACTION_TAKEN = 7     # H
V_AHR_IMPACT = 8       # I
V_NEXT_STEPS = 9       # J
V_OPTIONS = 10         # K
V_STATUS = 11          # L
V_NOTES = 12           # M
V_DATE_RESOLVED = 13   # N (resolved tab)
V_DOCS_NEEDED = 14     # O (active tab)

# ViolationUpdate field -> column letter
FIELD_COLUMNS = {
    "at_risk_sales": "G",
    "action_taken": "H",
    "ahr_impact": "I",
    "next_steps": "J",
    "options": "K",
    "status": "L",
    "notes": "M",
    "docs_needed": "O",
}

_STATUS_ALIASES = {s.value.lower(): s for s in ViolationStatus}
_STATUS_ALIASES["waiting"] = ViolationStatus.WAITING_ON_CLIENT

_SHEET_ID_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%y",
    "%b %d, %Y",
    "%B %d, %Y",
)


def cell(row: list, index: int) -> str:
    """Return the trimmed cell at index, or '' past the end of a short row."""
    if index < len(row) and row[index] is not None:
        return str(row[index]).strip()
    return ""


def parse_int(value: str) -> int:
    try:
        return int(float(value.replace(",", "")))
    except (ValueError, AttributeError):
        return 0


def parse_money(value: str) -> float:
    try:
        return float(value.replace("$", "").replace(",", ""))
    except (ValueError, AttributeError):
        return 0.0


def parse_status(raw: Optional[str]) -> ViolationStatus:
    """Case-insensitive status lookup; anything unknown becomes Assessing."""
    return _STATUS_ALIASES.get((raw or "").strip().lower(), ViolationStatus.ASSESSING)


def parse_ahr_impact(raw: Optional[str]) -> AhrImpact:
    normalized = (raw or "").strip().lower()
    if "high" in normalized:
        return "High"
    if "low" in normalized:
        return "Low"
    return "No impact"


def parse_docs_needed(raw: Optional[str]) -> list[str]:
    return [d.strip() for d in (raw or "").split(",") if d.strip()]


def parse_sheet_datetime(raw: Optional[str]) -> Optional[datetime]:
    """Parse the date formats seen in the sheets; naive values are taken as UTC."""
    value = (raw or "").strip()
    if not value:
        return None
    parsed = None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def extract_sheet_id(url: str) -> Optional[str]:
    match = _SHEET_ID_RE.search(url or "")
    return match.group(1) if match else None


def slugify_store_name(store_name: str) -> str:
    return re.sub(r"\s+", "-", store_name.strip().lower())


def normalize_subdomain(raw: str, root_domain: str) -> str:
    """
    Reduce a column-L value to a bare subdomain label.

    Accepts https://x.<root>, x.<root> or a bare label; returns '' otherwise.
    """
    value = (raw or "").strip().lower()
    if not value:
        return ""
    root = root_domain.lower().split(":")[0]
    if "://" in value:
        value = value.split("://", 1)[1]
    value = value.split("/", 1)[0]
    if root and value.endswith("." + root):
        return value[: -(len(root) + 1)]
    if " " not in value and "." not in value:
        return value
    return ""


def tenant_subdomain(row: list, root_domain: str) -> str:
    return normalize_subdomain(cell(row, M_SUBDOMAIN), root_domain) or slugify_store_name(cell(row, M_STORE_NAME))


def row_to_tenant(row: list, root_domain: str) -> Tenant:
    return Tenant(
        store_name=cell(row, M_STORE_NAME),
        merchant_id=cell(row, M_MERCHANT_ID),
        email=cell(row, M_EMAIL),
        sheet_url=cell(row, M_SHEET_URL),
        total_violations=parse_int(cell(row, M_TOTAL)),
        violations_last_7_days=parse_int(cell(row, M_LAST_7_DAYS)),
        violations_last_2_days=parse_int(cell(row, M_LAST_2_DAYS)),
        at_risk_sales=parse_money(cell(row, M_AT_RISK_SALES)),
        high_impact_count=parse_int(cell(row, M_HIGH_IMPACT)),
        resolved_count=parse_int(cell(row, M_RESOLVED)),
        subdomain=tenant_subdomain(row, root_domain),
        document_folder_url=cell(row, M_DOC_FOLDER) or None,
    )


def tenant_matches(row: list, subdomain: str, root_domain: str) -> bool:
    """Match on column L (any accepted form) first, then on store name / its slug."""
    wanted = subdomain.strip().lower()
    if not wanted:
        return False
    if normalize_subdomain(cell(row, M_SUBDOMAIN), root_domain) == wanted:
        return True
    store = cell(row, M_STORE_NAME)
    return store.lower() == wanted or slugify_store_name(store) == wanted


def row_to_violation(row: list, row_index: int, tab: str) -> Optional[Violation]:
    """Map one data row; rows with neither an id nor an ASIN yield None."""
    if not row or (not cell(row, V_ID) and not cell(row, V_ASIN)):
        return None
    resolved = tab == "resolved"
    return Violation(
        id=cell(row, V_ID) or f"gen-{row_index}",
        imported_at=cell(row, V_IMPORTED_AT),
        reason=cell(row, V_REASON),
        date=cell(row, V_DATE),
        asin=cell(row, V_ASIN),
        product_title=cell(row, V_TITLE),
        at_risk_sales=parse_money(cell(row, V_AT_RISK_SALES)),
        action_taken=cell(row, V_ACTION_TAKEN),
        ahr_impact=parse_ahr_impact(cell(row, V_AHR_IMPACT)),
        next_steps=cell(row, V_NEXT_STEPS),
        options=cell(row, V_OPTIONS),
        status=ViolationStatus.RESOLVED if resolved else parse_status(cell(row, V_STATUS)),
        notes=cell(row, V_NOTES),
        date_resolved=cell(row, V_DATE_RESOLVED) if resolved else None,
        docs_needed=None if resolved else parse_docs_needed(cell(row, V_DOCS_NEEDED)),
    )


def rows_to_violations(rows: list[list], tab: str) -> list[Violation]:
    """Skip the header row and map the rest."""
    violations = []
    for i, row in enumerate(rows[1:], start=1):
        v = row_to_violation(row, i, tab)
        if v is not None:
            violations.append(v)
    return violations


def cell_value(field: str, value) -> str | float:
    """Serialize a ViolationUpdate field for writing into its column."""
    if field == "docs_needed":
        return ", ".join(value)
    if isinstance(value, ViolationStatus):
        return value.value
    return value
