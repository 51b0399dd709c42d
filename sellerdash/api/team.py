"""Team (staff) API routes: client overview, violation edits, resolve, diagnostics."""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from sellerdash.api.auth import AuthenticatedUser, require_team_member
from sellerdash.api.deps import get_now, get_store
from sellerdash.config import settings
from sellerdash.connectors.errors import SheetsError
from sellerdash.schemas import (
    MAX_LEN_SUBDOMAIN,
    BulkUpdateRequest,
    BulkUpdateResponse,
    ClientsOut,
    DebugReport,
    DebugStep,
    ResolveRequest,
    ResolveResponse,
    UpdateViolationRequest,
    UpdateViolationResponse,
    ViolationsOut,
    ViolationTab,
)
from sellerdash.sheets.store import ViolationStore

router = APIRouter(dependencies=[Depends(require_team_member)])
logger = logging.getLogger(__name__)


@router.get("/clients", response_model=ClientsOut)
def list_clients(
    detailed: bool = Query(False),
    store: ViolationStore = Depends(get_store),
):
    """All clients from the master tab; detailed=true recomputes recent counts per client."""
    clients = store.clients_overview(detailed=detailed)
    return ClientsOut(clients=clients, total=len(clients))


@router.get("/violations", response_model=ViolationsOut)
def client_violations(
    subdomain: str = Query(..., min_length=1, max_length=MAX_LEN_SUBDOMAIN),
    tab: ViolationTab = Query("active"),
    store: ViolationStore = Depends(get_store),
):
    tenant = store.require_tenant(subdomain.lower())
    violations = store.list_violations(tenant, tab)
    return ViolationsOut(violations=violations, total=len(violations))


@router.patch("/violations/update", response_model=UpdateViolationResponse)
def update_violation(
    body: UpdateViolationRequest,
    user: AuthenticatedUser = Depends(require_team_member),
    store: ViolationStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Write the given fields of one active violation."""
    if not body.updates.set_fields():
        raise HTTPException(400, "No updates provided")
    fields = store.update_by_id(body.subdomain.lower(), body.violation_id, body.updates)
    logger.info(
        "%s updated violation %s for %s: %s", user.email, body.violation_id, body.subdomain, ", ".join(fields)
    )
    return UpdateViolationResponse(violation_id=body.violation_id, updated_at=now, fields_updated=fields)


@router.patch("/violations/bulk-update", response_model=BulkUpdateResponse)
def bulk_update_violations(
    body: BulkUpdateRequest,
    user: AuthenticatedUser = Depends(require_team_member),
    store: ViolationStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Apply per-violation updates; failures are reported per item, not as a request error."""
    if len(body.violations) > settings.bulk_update_max_items:
        raise HTTPException(400, f"Maximum {settings.bulk_update_max_items} violations per bulk update")
    results = store.bulk_update(body.subdomain.lower(), body.violations)
    succeeded = sum(1 for res in results if res.success)
    failed = len(results) - succeeded
    logger.info(
        "%s bulk-updated %d violations for %s (%d ok, %d failed)",
        user.email, len(results), body.subdomain, succeeded, failed,
    )
    return BulkUpdateResponse(
        success=failed == 0,
        total=len(results),
        succeeded=succeeded,
        failed=failed,
        results=results,
        updated_at=now,
    )


@router.post("/violations/resolve", response_model=ResolveResponse)
def resolve_violation(
    body: ResolveRequest,
    user: AuthenticatedUser = Depends(require_team_member),
    store: ViolationStore = Depends(get_store),
):
    """Move a violation to the resolved tab. Safe to retry."""
    outcome = store.resolve_violation(body.subdomain.lower(), body.violation_id)
    logger.info(
        "%s resolved violation %s for %s (already_resolved=%s)",
        user.email, body.violation_id, body.subdomain, outcome.already_resolved,
    )
    return ResolveResponse(
        violation_id=outcome.violation_id,
        resolved_at=outcome.resolved_at,
        already_resolved=outcome.already_resolved,
    )


@router.get("/debug/client", response_model=DebugReport)
def debug_client(
    subdomain: str = Query(..., min_length=1, max_length=MAX_LEN_SUBDOMAIN),
    store: ViolationStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Step-by-step check of tenant lookup and violation fetches for one subdomain."""
    subdomain = subdomain.lower()
    steps: list[DebugStep] = []
    summary = ""

    tenant = None
    try:
        tenant = store.get_tenant(subdomain)
    except SheetsError as exc:
        steps.append(DebugStep(step="Tenant Lookup", success=False, details=f"Error: {exc.message}"))
        summary = "ISSUE: Error during tenant lookup."
    else:
        if tenant:
            steps.append(
                DebugStep(
                    step="Tenant Lookup",
                    success=True,
                    details={
                        "store_name": tenant.store_name,
                        "merchant_id": tenant.merchant_id,
                        "sheet_url": tenant.sheet_url[:80] + "..." if tenant.sheet_url else "MISSING",
                        "total_violations": tenant.total_violations,
                    },
                )
            )
        else:
            steps.append(
                DebugStep(
                    step="Tenant Lookup",
                    success=False,
                    details=f'No tenant found for subdomain "{subdomain}". Check column L or column A of the master tab.',
                )
            )
            summary = f'ISSUE: Tenant "{subdomain}" not found in master tab.'

    if tenant:
        try:
            active = store.list_violations(tenant, "active")
            resolved = store.list_violations(tenant, "resolved")
        except SheetsError as exc:
            steps.append(DebugStep(step="Violations Fetch", success=False, details=f"Error: {exc.message}"))
            summary = "ISSUE: Error fetching violations from client sheet."
        else:
            steps.append(
                DebugStep(
                    step="Active Violations Fetch",
                    success=len(active) > 0,
                    details={
                        "count": len(active),
                        "sample_statuses": [v.status.value for v in active[:5]],
                        "sample_asins": [v.asin for v in active[:3]],
                    },
                )
            )
            steps.append(DebugStep(step="Resolved Violations Fetch", success=True, details={"count": len(resolved)}))
            if not active and tenant.total_violations > 0:
                summary = (
                    f"ISSUE: Tenant has {tenant.total_violations} total violations in the master tab "
                    "but fetch returned 0. Likely tab name mismatch or sheet access issue."
                )
            elif not active:
                summary = "INFO: No active violations found."
            else:
                summary = f"SUCCESS: Found {len(active)} active and {len(resolved)} resolved violations."

    return DebugReport(subdomain=subdomain, timestamp=now, steps=steps, summary=summary)
