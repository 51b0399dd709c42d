"""
Spreadsheet-backed access layer for tenants and violations.

Every call to the spreadsheet API goes through the request gate (in-flight cap)
and the retry policy (backoff on rate limits). Tenant rows, tab metadata and
client lists are cached with fixed TTLs; there is no other invalidation.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from sellerdash.config import settings
from sellerdash.connectors.errors import (
    SheetsError,
    TabNotFoundError,
    TenantNotFoundError,
    ViolationNotFoundError,
)
from sellerdash.connectors.google_sheets import GoogleSheetsConnector, a1_range
from sellerdash.schemas import (
    Account,
    BulkItemResult,
    BulkUpdateItem,
    ClientOverview,
    Tenant,
    Violation,
    ViolationUpdate,
)
from sellerdash.sheets import rows as r
from sellerdash.sheets.cache import TTLCache
from sellerdash.sheets.gate import RequestGate
from sellerdash.sheets.retry import RetryPolicy

logger = logging.getLogger(__name__)

ACTIVE_TAB_NAMES = [
    "All Current Violations",
    "Current Violations",
    "Active Violations",
    "All Active Violations",
    "Open Violations",
]
RESOLVED_TAB_NAMES = [
    "All Resolved Violations",
    "Resolved Violations",
    "Closed Violations",
    "All Closed Violations",
]
TAB_NAMES = {"active": ACTIVE_TAB_NAMES, "resolved": RESOLVED_TAB_NAMES}
LAST_COLUMN = {"active": "O", "resolved": "N"}

# Columns A..M are carried over when a violation moves to the resolved tab.
RESOLVED_CARRY_COLUMNS = 13
DETAIL_WORKERS = 5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ResolveOutcome:
    violation_id: str
    resolved_at: datetime
    already_resolved: bool = False


class ViolationStore:
    """Reads and writes tenant/violation rows in the master and per-tenant spreadsheets."""

    def __init__(
        self,
        connector: GoogleSheetsConnector,
        master_spreadsheet_id: str,
        *,
        master_tab_name: str = "All Seller Information",
        root_domain: str = "localhost",
        master_user_emails: Iterable[str] = (),
        tenant_cache: Optional[TTLCache] = None,
        clients_cache: Optional[TTLCache] = None,
        gate: Optional[RequestGate] = None,
        retry: Optional[RetryPolicy] = None,
        bulk_batch_size: int = 5,
        bulk_batch_delay: float = 0.1,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._connector = connector
        self.master_spreadsheet_id = master_spreadsheet_id
        self.master_tab_name = master_tab_name
        self.root_domain = root_domain
        self.master_user_emails = {e.lower() for e in master_user_emails}
        self.tenant_cache = tenant_cache if tenant_cache is not None else TTLCache(300)
        self.clients_cache = clients_cache if clients_cache is not None else TTLCache(120)
        self.gate = gate or RequestGate()
        self.retry = retry or RetryPolicy()
        self.bulk_batch_size = max(1, bulk_batch_size)
        self.bulk_batch_delay = bulk_batch_delay
        self._clock = clock
        self._sleep = sleep
        # One lock per tenant spreadsheet: row numbers are only valid while no other write runs.
        self._write_locks: dict[str, threading.Lock] = {}
        self._write_locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, connector: Optional[GoogleSheetsConnector] = None) -> "ViolationStore":
        return cls(
            connector or GoogleSheetsConnector.from_settings(),
            settings.master_spreadsheet_id,
            master_tab_name=settings.master_tab_name,
            root_domain=settings.root_domain,
            master_user_emails=settings.master_user_email_list,
            tenant_cache=TTLCache(settings.tenant_cache_ttl_seconds),
            clients_cache=TTLCache(settings.clients_cache_ttl_seconds),
            gate=RequestGate(settings.sheets_max_in_flight),
            retry=RetryPolicy(
                max_attempts=settings.sheets_retry_max_attempts,
                base_delay=settings.sheets_retry_base_delay,
                max_delay=settings.sheets_retry_max_delay,
            ),
            bulk_batch_size=settings.bulk_update_batch_size,
            bulk_batch_delay=settings.bulk_update_batch_delay_ms / 1000.0,
        )

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    def _call(self, method: str, *args):
        fn = getattr(self._connector, method)

        def attempt():
            with self.gate.slot():
                return fn(*args)

        return self.retry.run(attempt, description=method)

    def _master_rows(self) -> list[list[str]]:
        """Data rows of the master tab (header skipped), cached with the tenant TTL."""
        key = ("master_rows",)
        cached = self.tenant_cache.get(key)
        if cached is not None:
            return cached
        rows = self._call(
            "get_values", self.master_spreadsheet_id, a1_range(self.master_tab_name, "A", "N")
        )
        data = rows[1:] if len(rows) >= 2 else []
        self.tenant_cache.set(key, data)
        return data

    def tabs(self, spreadsheet_id: str) -> dict[str, int]:
        key = ("tabs", spreadsheet_id)
        cached = self.tenant_cache.get(key)
        if cached is not None:
            return cached
        tabs = self._call("get_tabs", spreadsheet_id)
        self.tenant_cache.set(key, tabs)
        return tabs

    def resolve_tab(self, spreadsheet_id: str, kind: str) -> str:
        """Return the first known tab-name variant present in the spreadsheet."""
        names = TAB_NAMES[kind]
        existing = self.tabs(spreadsheet_id)
        for name in names:
            if name in existing:
                return name
        logger.error("No %s tab in spreadsheet %s. Tried: %s", kind, spreadsheet_id, ", ".join(names))
        raise TabNotFoundError(spreadsheet_id, names)

    # ------------------------------------------------------------------
    # tenants
    # ------------------------------------------------------------------

    def get_tenant(self, subdomain: str) -> Optional[Tenant]:
        key = ("tenant", subdomain.lower())
        cached = self.tenant_cache.get(key)
        if cached is not None:
            return cached
        for row in self._master_rows():
            if r.tenant_matches(row, subdomain, self.root_domain):
                tenant = r.row_to_tenant(row, self.root_domain)
                self.tenant_cache.set(key, tenant)
                return tenant
        return None

    def require_tenant(self, subdomain: str) -> Tenant:
        tenant = self.get_tenant(subdomain)
        if tenant is None:
            raise TenantNotFoundError(subdomain)
        return tenant

    def get_client_sheet_id(self, subdomain: str) -> Optional[str]:
        tenant = self.get_tenant(subdomain)
        return r.extract_sheet_id(tenant.sheet_url) if tenant else None

    def _require_sheet_id(self, subdomain: str) -> str:
        sheet_id = self.get_client_sheet_id(subdomain)
        if not sheet_id:
            raise TenantNotFoundError(subdomain)
        return sheet_id

    def accounts_for_email(self, email: str) -> list[Account]:
        """Accounts owned by an e-mail; master users get every account."""
        email_lower = email.strip().lower()
        is_master = email_lower in self.master_user_emails
        accounts = []
        seen = set()
        for row in self._master_rows():
            store_name = r.cell(row, r.M_STORE_NAME)
            if not store_name:
                continue
            if not is_master and r.cell(row, r.M_EMAIL).lower() != email_lower:
                continue
            subdomain = r.tenant_subdomain(row, self.root_domain)
            if subdomain and subdomain not in seen:
                seen.add(subdomain)
                accounts.append(Account(subdomain=subdomain, store_name=store_name))
        logger.info("Found %d accounts for %s (master=%s)", len(accounts), email_lower, is_master)
        return accounts

    def can_access(self, email: Optional[str], subdomain: str) -> bool:
        if not email:
            return False
        wanted = subdomain.lower()
        return any(a.subdomain == wanted for a in self.accounts_for_email(email))

    # ------------------------------------------------------------------
    # violations
    # ------------------------------------------------------------------

    def list_violations(self, tenant: Tenant, tab: str = "active") -> list[Violation]:
        sheet_id = r.extract_sheet_id(tenant.sheet_url)
        if not sheet_id:
            logger.error("Invalid sheet URL for %s: %s", tenant.store_name, tenant.sheet_url)
            return []
        tab_name = self.resolve_tab(sheet_id, tab)
        rows = self._call("get_values", sheet_id, a1_range(tab_name, "A", LAST_COLUMN[tab]))
        if len(rows) < 2:
            logger.info("Tab %r for %s has no data rows", tab_name, tenant.store_name)
            return []
        violations = r.rows_to_violations(rows, tab)
        logger.info("Loaded %d %s violations for %s from %r", len(violations), tab, tenant.store_name, tab_name)
        return violations

    def _id_column(self, spreadsheet_id: str, tab_name: str) -> list[str]:
        rows = self._call("get_values", spreadsheet_id, a1_range(tab_name, "A", "A"))
        return [r.cell(row, 0) for row in rows]

    @staticmethod
    def _row_index(ids: list[str], violation_id: str) -> Optional[int]:
        """1-based sheet row of violation_id, skipping the header row."""
        wanted = violation_id.strip()
        for i, value in enumerate(ids[1:], start=2):
            if value == wanted:
                return i
        return None

    def find_row(self, spreadsheet_id: str, tab_name: str, violation_id: str) -> Optional[int]:
        return self._row_index(self._id_column(spreadsheet_id, tab_name), violation_id)

    def update_violation(
        self, spreadsheet_id: str, tab_name: str, row_number: int, update: ViolationUpdate
    ) -> list[str]:
        """Write every set field of update into its column on row_number. Returns field names written."""
        values = update.model_dump(exclude_none=True)
        cells = {
            a1_range(tab_name, f"{r.FIELD_COLUMNS[field]}{row_number}"): r.cell_value(field, value)
            for field, value in values.items()
        }
        if cells:
            self._call("batch_update_values", spreadsheet_id, cells)
        return list(values)

    def _write_lock(self, spreadsheet_id: str) -> threading.Lock:
        with self._write_locks_guard:
            return self._write_locks.setdefault(spreadsheet_id, threading.Lock())

    def update_by_id(self, subdomain: str, violation_id: str, update: ViolationUpdate) -> list[str]:
        sheet_id = self._require_sheet_id(subdomain)
        tab_name = self.resolve_tab(sheet_id, "active")
        with self._write_lock(sheet_id):
            row_number = self.find_row(sheet_id, tab_name, violation_id)
            if row_number is None:
                raise ViolationNotFoundError(violation_id)
            return self.update_violation(sheet_id, tab_name, row_number, update)

    def bulk_update(self, subdomain: str, items: list[BulkUpdateItem]) -> list[BulkItemResult]:
        """Apply per-violation updates in small concurrent batches; one result per item."""
        sheet_id = self._require_sheet_id(subdomain)
        tab_name = self.resolve_tab(sheet_id, "active")
        with self._write_lock(sheet_id):
            return self._bulk_update_locked(sheet_id, tab_name, items)

    def _bulk_update_locked(
        self, sheet_id: str, tab_name: str, items: list[BulkUpdateItem]
    ) -> list[BulkItemResult]:
        ids = self._id_column(sheet_id, tab_name)

        def apply(item: BulkUpdateItem) -> BulkItemResult:
            if not item.updates.set_fields():
                return BulkItemResult(violation_id=item.violation_id, success=False, error="Invalid update item")
            row_number = self._row_index(ids, item.violation_id)
            if row_number is None:
                return BulkItemResult(violation_id=item.violation_id, success=False, error="Violation not found")
            try:
                self.update_violation(sheet_id, tab_name, row_number, item.updates)
            except SheetsError as exc:
                logger.warning("Bulk update of %s failed: %s", item.violation_id, exc.message)
                return BulkItemResult(violation_id=item.violation_id, success=False, error=exc.message)
            return BulkItemResult(violation_id=item.violation_id, success=True)

        results: list[BulkItemResult] = []
        size = self.bulk_batch_size
        with ThreadPoolExecutor(max_workers=size) as pool:
            for start in range(0, len(items), size):
                results.extend(pool.map(apply, items[start:start + size]))
                if start + size < len(items) and self.bulk_batch_delay > 0:
                    self._sleep(self.bulk_batch_delay)
        return results

    def _resolved_date(self, spreadsheet_id: str, resolved_tab: str, row_number: int) -> Optional[datetime]:
        rows = self._call(
            "get_values", spreadsheet_id, a1_range(resolved_tab, f"N{row_number}")
        )
        return r.parse_sheet_datetime(r.cell(rows[0], 0)) if rows else None

    def resolve_violation(self, subdomain: str, violation_id: str) -> ResolveOutcome:
        """
        Move a violation from the active tab to the resolved tab.

        Append-then-delete with no transaction. The append is skipped when the id
        is already on the resolved tab, so a retried request after a failed delete
        finishes the move instead of duplicating the row. When the id is already
        on the resolved tab, its date in column N is reported as ``resolved_at``.

        ``already_resolved`` is set only when the id was gone from the active tab
        before this call.
        """
        sheet_id = self._require_sheet_id(subdomain)
        active_tab = self.resolve_tab(sheet_id, "active")
        resolved_tab = self.resolve_tab(sheet_id, "resolved")
        now = self._clock()

        with self._write_lock(sheet_id):
            resolved_row = self.find_row(sheet_id, resolved_tab, violation_id)
            resolved_at = now
            if resolved_row is not None:
                resolved_at = self._resolved_date(sheet_id, resolved_tab, resolved_row) or now

            row_number = self.find_row(sheet_id, active_tab, violation_id)
            if row_number is None:
                if resolved_row is not None:
                    logger.info("Violation %s for %s is already resolved", violation_id, subdomain)
                    return ResolveOutcome(violation_id, resolved_at, already_resolved=True)
                raise ViolationNotFoundError(violation_id)

            if resolved_row is None:
                fetched = self._call(
                    "get_values", sheet_id, a1_range(active_tab, f"A{row_number}", f"O{row_number}")
                )
                values = list(fetched[0]) if fetched else []
                values = (values + [""] * RESOLVED_CARRY_COLUMNS)[:RESOLVED_CARRY_COLUMNS]
                values.append(now.strftime("%Y-%m-%d"))
                self._call("append_row", sheet_id, resolved_tab, values)

            # Rows can move between the read and the delete when the sheet is edited by hand.
            row_number = self.find_row(sheet_id, active_tab, violation_id)
            if row_number is None:
                logger.warning(
                    "Violation %s for %s left %r before its row was deleted", violation_id, subdomain, active_tab
                )
                return ResolveOutcome(violation_id, resolved_at)

            gid = self.tabs(sheet_id)[active_tab]
            try:
                self._call("delete_row", sheet_id, gid, row_number)
            except SheetsError:
                logger.error(
                    "Violation %s for %s was copied to %r but not removed from %r (row %d); retry to finish",
                    violation_id, subdomain, resolved_tab, active_tab, row_number,
                )
                raise
        return ResolveOutcome(violation_id, resolved_at)

    # ------------------------------------------------------------------
    # team overview
    # ------------------------------------------------------------------

    def clients_overview(self, detailed: bool = False) -> list[ClientOverview]:
        key = "detailed" if detailed else "basic"
        cached = self.clients_cache.get(key)
        if cached is not None:
            return cached

        clients = []
        for row in self._master_rows():
            store_name = r.cell(row, r.M_STORE_NAME)
            if not store_name:
                continue
            clients.append(
                ClientOverview(
                    store_name=store_name,
                    subdomain=r.tenant_subdomain(row, self.root_domain),
                    email=r.cell(row, r.M_EMAIL),
                    sheet_url=r.cell(row, r.M_SHEET_URL),
                    # Master counters approximate 48h/72h with the 2-day/7-day columns.
                    violations_48h=r.parse_int(r.cell(row, r.M_LAST_2_DAYS)),
                    violations_72h=r.parse_int(r.cell(row, r.M_LAST_7_DAYS)),
                    resolved_total=r.parse_int(r.cell(row, r.M_RESOLVED)),
                    high_impact_count=r.parse_int(r.cell(row, r.M_HIGH_IMPACT)),
                    at_risk_sales=r.parse_money(r.cell(row, r.M_AT_RISK_SALES)),
                )
            )

        if detailed and clients:
            now = self._clock()
            with ThreadPoolExecutor(max_workers=DETAIL_WORKERS) as pool:
                list(pool.map(lambda c: self._fill_client_detail(c, now), clients))

        logger.info("Returning %d clients (detailed=%s)", len(clients), detailed)
        self.clients_cache.set(key, clients)
        return clients

    def _fill_client_detail(self, client: ClientOverview, now: datetime) -> None:
        """Recompute 48h/72h and resolved-this-month from the client's own tabs."""
        sheet_id = r.extract_sheet_id(client.sheet_url)
        if not sheet_id:
            return
        try:
            active_tab = self.resolve_tab(sheet_id, "active")
            rows = self._call("get_values", sheet_id, a1_range(active_tab, "A", "B"))
            cutoff_48h = now - timedelta(hours=48)
            cutoff_72h = now - timedelta(hours=72)
            count_48h = count_72h = 0
            for row in rows[1:]:
                imported = r.parse_sheet_datetime(r.cell(row, r.V_IMPORTED_AT))
                if imported is None:
                    continue
                if imported >= cutoff_48h:
                    count_48h += 1
                if imported >= cutoff_72h:
                    count_72h += 1
            client.violations_48h = count_48h
            client.violations_72h = count_72h

            resolved_tab = self.resolve_tab(sheet_id, "resolved")
            rows = self._call("get_values", sheet_id, a1_range(resolved_tab, "A", "N"))
            this_month = 0
            for row in rows[1:]:
                resolved_at = r.parse_sheet_datetime(r.cell(row, r.V_DATE_RESOLVED))
                if resolved_at and resolved_at.year == now.year and resolved_at.month == now.month:
                    this_month += 1
            client.resolved_this_month = this_month
        except SheetsError as exc:
            logger.error("Error fetching metrics for %s: %s", client.store_name, exc.message)
