"""Shared FastAPI dependencies: the access layer, the clock, tenant resolution."""
from datetime import datetime
from typing import Optional

from fastapi import Depends, HTTPException, Query, Request

from sellerdash.api.auth import AuthenticatedUser, get_current_user, is_team_member
from sellerdash.middleware.subdomain import SUBDOMAIN_HEADER
from sellerdash.schemas import MAX_LEN_SUBDOMAIN, Tenant
from sellerdash.sheets.store import ViolationStore, utcnow

# Module-level store so caches and the request gate are shared across requests
_store: Optional[ViolationStore] = None


def get_store() -> ViolationStore:
    global _store
    if _store is None:
        _store = ViolationStore.from_settings()
    return _store


def get_now() -> datetime:
    return utcnow()


def request_subdomain(
    request: Request,
    subdomain: Optional[str] = Query(None, min_length=1, max_length=MAX_LEN_SUBDOMAIN),
) -> str:
    """Subdomain from ?subdomain=, the x-subdomain header, or the request host."""
    value = subdomain or request.headers.get(SUBDOMAIN_HEADER) or getattr(request.state, "subdomain", None)
    if not value:
        raise HTTPException(400, "Subdomain is required")
    return value.strip().lower()


def get_authorized_tenant(
    subdomain: str = Depends(request_subdomain),
    user: AuthenticatedUser = Depends(get_current_user),
    store: ViolationStore = Depends(get_store),
) -> Tenant:
    """The requested tenant, if the user owns it or is staff."""
    tenant = store.get_tenant(subdomain)
    if tenant is None:
        raise HTTPException(404, "Tenant not found")
    if not (is_team_member(user.email) or store.can_access(user.email, tenant.subdomain)):
        raise HTTPException(403, "Forbidden")
    return tenant
