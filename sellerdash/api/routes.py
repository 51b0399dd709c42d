"""Seller-facing API routes: tenant, violations, accounts, tickets, exports."""
import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response, StreamingResponse

from sellerdash.alerts.email import send_ticket_email
from sellerdash.api.auth import AuthenticatedUser, get_current_user, is_team_member
from sellerdash.api.deps import get_authorized_tenant, get_now, get_store
from sellerdash.exports.csv_export import export_filename, violations_to_csv
from sellerdash.exports.pdf_export import documents_needed_pdf, violations_report_pdf
from sellerdash.schemas import (
    MAX_LEN_EMAIL,
    ExportTab,
    Tenant,
    TicketRequest,
    TicketResponse,
    UserSubdomainOut,
    Violation,
    ViolationsOut,
    ViolationStatus,
    ViolationTab,
)
from sellerdash.services.filters import (
    filter_by_date_range,
    filter_by_search,
    filter_violations,
    range_days,
    sort_newest_first,
)
from sellerdash.sheets.store import ViolationStore

router = APIRouter()
logger = logging.getLogger(__name__)

TimeFilter = Literal["all", "7days", "30days", "90days"]


def _check_time_filter(value: str) -> str:
    try:
        range_days(value)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return value


def _violations_for_export(store: ViolationStore, tenant: Tenant, tab: str) -> list[Violation]:
    if tab == "all":
        return store.list_violations(tenant, "active") + store.list_violations(tenant, "resolved")
    return store.list_violations(tenant, tab)


@router.get("/tenant", response_model=Tenant)
def get_tenant(tenant: Tenant = Depends(get_authorized_tenant)):
    """Tenant record for the requested subdomain."""
    return tenant


@router.get("/violations", response_model=ViolationsOut)
def list_violations(
    tab: ViolationTab = Query("active"),
    time: TimeFilter = Query("all"),
    status: str = Query("all", max_length=32),
    search: str = Query("", max_length=200),
    tenant: Tenant = Depends(get_authorized_tenant),
    store: ViolationStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Violations for one tab of the tenant's sheet, filtered by time, status and search."""
    if status != "all" and status not in {s.value for s in ViolationStatus}:
        raise HTTPException(400, f"Unknown status: {status}")
    violations = store.list_violations(tenant, tab)
    filtered = filter_violations(violations, now, time_filter=time, status=status, search=search)
    logger.info(
        "Violations for %s: %d %s, %d after filters", tenant.subdomain, len(violations), tab, len(filtered)
    )
    return ViolationsOut(violations=filtered, total=len(filtered))


@router.get("/user-subdomain", response_model=UserSubdomainOut)
def user_subdomain(
    email: Optional[str] = Query(None, max_length=MAX_LEN_EMAIL),
    user: AuthenticatedUser = Depends(get_current_user),
    store: ViolationStore = Depends(get_store),
):
    """Subdomains (accounts) for the signed-in user's e-mail. Staff may look up any e-mail."""
    lookup = (email or user.email or "").strip().lower()
    if not lookup:
        raise HTTPException(400, "Email is required")
    if lookup != (user.email or "") and not is_team_member(user.email):
        raise HTTPException(403, "Forbidden")
    accounts = store.accounts_for_email(lookup)
    subdomains = [a.subdomain for a in accounts]
    return UserSubdomainOut(
        email=lookup,
        subdomains=subdomains,
        primary_subdomain=subdomains[0] if subdomains else None,
        accounts=accounts,
    )


@router.post("/ticket", response_model=TicketResponse)
def submit_ticket(
    body: TicketRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    """E-mail a support ticket to the support inbox, reply-to the signed-in user."""
    if not user.email:
        raise HTTPException(400, "Signed-in user has no e-mail address")
    recipients = send_ticket_email(body, user.email, now)
    return TicketResponse(sent=True, recipients=recipients)


@router.get("/export/violations-csv")
def export_violations_csv(
    tab: ExportTab = Query("active"),
    date_range: str = Query("all", max_length=32),
    search: str = Query("", max_length=200),
    tenant: Tenant = Depends(get_authorized_tenant),
    store: ViolationStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Export filtered violations as CSV."""
    _check_time_filter(date_range)
    violations = _violations_for_export(store, tenant, tab)
    violations = filter_by_search(filter_by_date_range(violations, date_range, now), search, extended=True)
    violations = sort_newest_first(violations)
    filename = export_filename(tenant.subdomain, tab, "violations", "csv", now.date())
    return StreamingResponse(
        iter([violations_to_csv(violations)]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/export/violations-pdf")
def export_violations_pdf(
    tab: ExportTab = Query("active"),
    date_range: str = Query("all", max_length=32),
    search: str = Query("", max_length=200),
    tenant: Tenant = Depends(get_authorized_tenant),
    store: ViolationStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Account health report PDF for the filtered violations."""
    _check_time_filter(date_range)
    violations = _violations_for_export(store, tenant, tab)
    violations = filter_by_search(filter_by_date_range(violations, date_range, now), search, extended=True)
    violations = sort_newest_first(violations)
    pdf = violations_report_pdf(tenant.store_name, tenant.merchant_id, violations, tab, date_range, search, now)
    filename = export_filename(tenant.subdomain, tab, "violations-report", "pdf", now.date())
    logger.info("Generated violations PDF for %s with %d violations", tenant.subdomain, len(violations))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/export/documents-pdf")
def export_documents_pdf(
    tenant: Tenant = Depends(get_authorized_tenant),
    store: ViolationStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """PDF listing the documents still needed for active violations."""
    violations = store.list_violations(tenant, "active")
    pdf = documents_needed_pdf(tenant.store_name, tenant.document_folder_url, violations, now)
    filename = export_filename(tenant.subdomain, "active", "documents-needed", "pdf", now.date())
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
