"""
Pydantic schemas for records and API bodies.

- Records (Tenant, Violation, ClientOverview) are built from spreadsheet rows.
- Request body models use extra="forbid" and bound every string.
"""
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_LEN_SUBDOMAIN = 63
MAX_LEN_VIOLATION_ID = 64
MAX_LEN_STORE_NAME = 255
MAX_LEN_EMAIL = 320
MAX_LEN_ASIN = 20
MAX_LEN_NOTES = 5000
MAX_LEN_TEXT = 2000
MAX_LEN_MESSAGE = 10000

AhrImpact = Literal["High", "Low", "No impact"]
ViolationTab = Literal["active", "resolved"]
ExportTab = Literal["active", "resolved", "all"]


class ViolationStatus(str, Enum):
    ASSESSING = "Assessing"
    WORKING = "Working"
    WAITING_ON_CLIENT = "Waiting on Client"
    SUBMITTED = "Submitted"
    REVIEW_RESOLVED = "Review Resolved"
    DENIED = "Denied"
    IGNORED = "Ignored"
    RESOLVED = "Resolved"
    ACKNOWLEDGED = "Acknowledged"


class Tenant(BaseModel):
    """One seller account, from the master tab."""
    store_name: str
    merchant_id: str = ""
    email: str = ""
    sheet_url: str = ""
    total_violations: int = 0
    violations_last_7_days: int = 0
    violations_last_2_days: int = 0
    at_risk_sales: float = 0.0
    high_impact_count: int = 0
    resolved_count: int = 0
    subdomain: str
    document_folder_url: Optional[str] = None


class Violation(BaseModel):
    id: str
    imported_at: str = ""
    reason: str = ""
    date: str = ""
    asin: str = ""
    product_title: str = ""
    at_risk_sales: float = 0.0
    action_taken: str = ""
    ahr_impact: AhrImpact = "No impact"
    next_steps: str = ""
    options: str = ""
    status: ViolationStatus = ViolationStatus.ASSESSING
    notes: str = ""
    date_resolved: Optional[str] = None  # resolved tab only
    docs_needed: Optional[list[str]] = None  # active tab only


class ClientOverview(BaseModel):
    store_name: str
    subdomain: str
    email: str = ""
    sheet_url: str = ""
    violations_48h: int = 0
    violations_72h: int = 0
    resolved_this_month: int = 0
    resolved_total: int = 0
    high_impact_count: int = 0
    at_risk_sales: float = 0.0


class Account(BaseModel):
    subdomain: str
    store_name: str


class ViolationUpdate(BaseModel):
    """Editable violation fields; unset fields are left untouched."""
    model_config = ConfigDict(extra="forbid")
    status: Optional[ViolationStatus] = None
    notes: Optional[str] = Field(None, max_length=MAX_LEN_NOTES)
    action_taken: Optional[str] = Field(None, max_length=MAX_LEN_TEXT)
    next_steps: Optional[str] = Field(None, max_length=MAX_LEN_TEXT)
    options: Optional[str] = Field(None, max_length=MAX_LEN_TEXT)
    ahr_impact: Optional[AhrImpact] = None
    at_risk_sales: Optional[float] = Field(None, ge=0)
    docs_needed: Optional[list[str]] = Field(None, max_length=20)

    def set_fields(self) -> list[str]:
        return list(self.model_dump(exclude_none=True))


# --- API bodies ---


class UpdateViolationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    subdomain: str = Field(..., min_length=1, max_length=MAX_LEN_SUBDOMAIN)
    violation_id: str = Field(..., min_length=1, max_length=MAX_LEN_VIOLATION_ID)
    updates: ViolationUpdate


class UpdateViolationResponse(BaseModel):
    violation_id: str
    updated_at: datetime
    fields_updated: list[str]


class BulkUpdateItem(BaseModel):
    model_config = ConfigDict(extra="forbid")
    violation_id: str = Field(..., min_length=1, max_length=MAX_LEN_VIOLATION_ID)
    updates: ViolationUpdate


class BulkUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    subdomain: str = Field(..., min_length=1, max_length=MAX_LEN_SUBDOMAIN)
    violations: list[BulkUpdateItem] = Field(..., min_length=1)


class BulkItemResult(BaseModel):
    violation_id: str
    success: bool
    error: Optional[str] = None


class BulkUpdateResponse(BaseModel):
    success: bool
    total: int
    succeeded: int
    failed: int
    results: list[BulkItemResult]
    updated_at: datetime


class ResolveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    subdomain: str = Field(..., min_length=1, max_length=MAX_LEN_SUBDOMAIN)
    violation_id: str = Field(..., min_length=1, max_length=MAX_LEN_VIOLATION_ID)


class ResolveResponse(BaseModel):
    violation_id: str
    resolved_at: datetime
    already_resolved: bool = False


class ViolationsOut(BaseModel):
    violations: list[Violation]
    total: int


class ClientsOut(BaseModel):
    clients: list[ClientOverview]
    total: int


class UserSubdomainOut(BaseModel):
    email: str
    subdomains: list[str]
    primary_subdomain: Optional[str] = None
    accounts: list[Account]


class TicketRequest(BaseModel):
    """Support ticket from a seller; the sender is the signed-in user."""
    model_config = ConfigDict(extra="forbid")
    subject: Literal["Question", "Document Request", "Status Update", "Other"]
    message: str = Field(..., min_length=1, max_length=MAX_LEN_MESSAGE)
    asin: Optional[str] = Field(None, max_length=MAX_LEN_ASIN)
    store_name: str = Field(..., min_length=1, max_length=MAX_LEN_STORE_NAME)


class TicketResponse(BaseModel):
    sent: bool
    recipients: int


class DebugStep(BaseModel):
    step: str
    success: bool
    details: str | dict


class DebugReport(BaseModel):
    subdomain: str
    timestamp: datetime
    steps: list[DebugStep]
    summary: str
