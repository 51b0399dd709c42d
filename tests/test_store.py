"""
tests/test_store.py

ViolationStore against the in-memory spreadsheet connector.

Coverage
--------
- Tab resolution from spreadsheet metadata, including the not-found case
- Tenant lookup by column L, store name and slug; TTL caching of master rows
- Account lookup by owner e-mail and for master users
- Violation listing, including tenants with an unusable sheet URL
- Single and bulk updates write the mapped columns
- Resolve moves exactly one row, is safe to repeat after a partial failure
  and serialises with other writes to the same spreadsheet
- Rate-limited calls are retried; other errors surface immediately
- Client overview: master counters, detailed recount, caching
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from sellerdash.connectors.errors import (
    SheetsError,
    SheetsErrorCode,
    TabNotFoundError,
    TenantNotFoundError,
    ViolationNotFoundError,
)
from sellerdash.schemas import BulkUpdateItem, ViolationStatus, ViolationUpdate
from sellerdash.sheets.cache import TTLCache
from sellerdash.sheets.retry import RetryPolicy
from sellerdash.sheets.store import ViolationStore

from tests.fakes import MASTER_ID, MASTER_TAB, MASTER_USER_EMAIL, NOW, OWNER_EMAIL, ROOT_DOMAIN

ACTIVE = "Current Violations"
RESOLVED = "Resolved Violations"


# ---------------------------------------------------------------------------
# Tabs and tenants
# ---------------------------------------------------------------------------


class TestResolveTab:
    def test_picks_known_variant(self, store) -> None:
        assert store.resolve_tab("acme-sheet", "active") == ACTIVE
        assert store.resolve_tab("acme-sheet", "resolved") == RESOLVED

    def test_first_variant_in_order_wins(self, store, connector) -> None:
        connector.spreadsheets["acme-sheet"]["All Current Violations"] = [["Violation ID"]]
        assert store.resolve_tab("acme-sheet", "active") == "All Current Violations"

    def test_missing_tab_raises(self, store, connector) -> None:
        connector.spreadsheets["empty-sheet"] = {"Sheet1": []}
        with pytest.raises(TabNotFoundError) as excinfo:
            store.resolve_tab("empty-sheet", "resolved")
        assert excinfo.value.tried[0] == "All Resolved Violations"
        assert excinfo.value.http_status == 404

    def test_tab_metadata_is_cached(self, store, connector) -> None:
        store.resolve_tab("acme-sheet", "active")
        store.resolve_tab("acme-sheet", "resolved")
        assert connector.count("get_tabs") == 1


class TestTenants:
    def test_lookup_by_column_l(self, store) -> None:
        tenant = store.get_tenant("acme")
        assert tenant is not None
        assert tenant.store_name == "Acme Goods"
        assert tenant.merchant_id == "M123"

    def test_lookup_is_case_insensitive(self, store) -> None:
        assert store.get_tenant("ACME").subdomain == "acme"

    def test_lookup_by_slug(self, store) -> None:
        assert store.get_tenant("beta-store").store_name == "Beta Store"

    def test_unknown_tenant(self, store) -> None:
        assert store.get_tenant("nobody") is None
        with pytest.raises(TenantNotFoundError):
            store.require_tenant("nobody")

    def test_master_rows_cached_until_ttl(self, store, connector, clock) -> None:
        store.get_tenant("acme")
        store.get_tenant("beta-store")
        assert connector.count("get_values") == 1

        clock.advance(300)
        store.get_tenant("acme")
        assert connector.count("get_values") == 2

    def test_client_sheet_id(self, store) -> None:
        assert store.get_client_sheet_id("acme") == "acme-sheet"
        assert store.get_client_sheet_id("broken") is None
        assert store.get_client_sheet_id("nobody") is None


class TestAccounts:
    def test_owner_sees_own_accounts(self, store) -> None:
        accounts = store.accounts_for_email(OWNER_EMAIL.upper())
        assert [a.subdomain for a in accounts] == ["acme"]

    def test_master_user_sees_everything(self, store) -> None:
        accounts = store.accounts_for_email(MASTER_USER_EMAIL)
        assert [a.subdomain for a in accounts] == ["acme", "beta-store", "broken"]

    def test_can_access(self, store) -> None:
        assert store.can_access(OWNER_EMAIL, "acme")
        assert not store.can_access(OWNER_EMAIL, "beta-store")
        assert not store.can_access(None, "acme")
        assert store.can_access(MASTER_USER_EMAIL, "broken")


# ---------------------------------------------------------------------------
# Violations
# ---------------------------------------------------------------------------


class TestListViolations:
    def test_active(self, store) -> None:
        violations = store.list_violations(store.get_tenant("acme"), "active")
        assert [v.id for v in violations] == ["V1", "V2", "gen-4"]
        assert violations[1].status == ViolationStatus.WAITING_ON_CLIENT
        assert violations[2].status == ViolationStatus.ASSESSING

    def test_resolved(self, store) -> None:
        violations = store.list_violations(store.get_tenant("acme"), "resolved")
        assert [v.id for v in violations] == ["R1"]
        assert violations[0].date_resolved == "2026-10-05"

    def test_invalid_sheet_url_yields_empty_list(self, store, connector) -> None:
        assert store.list_violations(store.get_tenant("broken"), "active") == []
        assert connector.count("get_tabs") == 0

    def test_header_only_tab(self, store, connector) -> None:
        connector.spreadsheets["acme-sheet"][ACTIVE][1:] = []
        assert store.list_violations(store.get_tenant("acme"), "active") == []

    def test_rate_limit_is_retried(self, store, connector, sleeps) -> None:
        tenant = store.get_tenant("acme")
        connector.fail_next("get_values", SheetsErrorCode.RATE_LIMITED, times=2)
        violations = store.list_violations(tenant, "active")
        assert len(violations) == 3
        assert sleeps == [1.0, 2.0]

    def test_permission_denied_is_not_retried(self, store, connector, sleeps) -> None:
        tenant = store.get_tenant("acme")
        connector.fail_next("get_tabs", SheetsErrorCode.PERMISSION_DENIED)
        with pytest.raises(SheetsError) as excinfo:
            store.list_violations(tenant, "active")
        assert excinfo.value.http_status == 403
        assert sleeps == []


class TestUpdates:
    def test_update_writes_mapped_columns(self, store, connector) -> None:
        update = ViolationUpdate(status=ViolationStatus.SUBMITTED, notes="sent appeal", docs_needed=["Invoice"])
        fields = store.update_by_id("acme", "V2", update)
        assert set(fields) == {"status", "notes", "docs_needed"}

        row = connector.tab("acme-sheet", ACTIVE)[2]
        assert row[11] == "Submitted"
        assert row[12] == "sent appeal"
        assert row[14] == "Invoice"
        assert connector.count("batch_update_values") == 1

    def test_update_leaves_unset_fields_alone(self, store, connector) -> None:
        store.update_by_id("acme", "V1", ViolationUpdate(next_steps="Call brand"))
        row = connector.tab("acme-sheet", ACTIVE)[1]
        assert row[9] == "Call brand"
        assert row[11] == "Working"
        assert row[12] == "note 1"

    def test_update_unknown_violation(self, store) -> None:
        with pytest.raises(ViolationNotFoundError):
            store.update_by_id("acme", "V404", ViolationUpdate(notes="x"))

    def test_update_unknown_tenant(self, store) -> None:
        with pytest.raises(TenantNotFoundError):
            store.update_by_id("nobody", "V1", ViolationUpdate(notes="x"))

    def test_bulk_update_reports_per_item(self, store, connector) -> None:
        items = [
            BulkUpdateItem(violation_id="V1", updates=ViolationUpdate(status=ViolationStatus.DENIED)),
            BulkUpdateItem(violation_id="V404", updates=ViolationUpdate(notes="x")),
            BulkUpdateItem(violation_id="V2", updates=ViolationUpdate()),
        ]
        results = store.bulk_update("acme", items)
        assert [(res.violation_id, res.success, res.error) for res in results] == [
            ("V1", True, None),
            ("V404", False, "Violation not found"),
            ("V2", False, "Invalid update item"),
        ]
        assert connector.tab("acme-sheet", ACTIVE)[1][11] == "Denied"

    def test_bulk_update_write_failure_is_per_item(self, store, connector) -> None:
        connector.fail_next("batch_update_values", SheetsErrorCode.PERMISSION_DENIED)
        items = [BulkUpdateItem(violation_id="V1", updates=ViolationUpdate(notes="x"))]
        results = store.bulk_update("acme", items)
        assert results[0].success is False
        assert "failed" in results[0].error

    def test_bulk_update_pauses_between_batches(self, connector) -> None:
        pauses: list[float] = []
        store = ViolationStore(
            connector,
            MASTER_ID,
            master_tab_name=MASTER_TAB,
            root_domain=ROOT_DOMAIN,
            retry=RetryPolicy(sleep=lambda s: None),
            bulk_batch_size=2,
            bulk_batch_delay=0.1,
            sleep=pauses.append,
        )
        items = [BulkUpdateItem(violation_id=f"X{i}", updates=ViolationUpdate(notes="n")) for i in range(5)]
        results = store.bulk_update("acme", items)
        assert len(results) == 5
        assert pauses == [0.1, 0.1]


# ---------------------------------------------------------------------------
# Resolve
# ---------------------------------------------------------------------------


class TestResolve:
    def test_moves_row_to_resolved_tab(self, store, connector) -> None:
        outcome = store.resolve_violation("acme", "V1")
        assert outcome.violation_id == "V1"
        assert outcome.resolved_at == NOW
        assert outcome.already_resolved is False

        assert "V1" not in connector.ids("acme-sheet", ACTIVE)
        moved = connector.tab("acme-sheet", RESOLVED)[-1]
        assert moved[0] == "V1"
        assert moved[4] == "B000AAA111"
        assert moved[12] == "note 1"
        assert moved[13] == "2026-10-19"
        assert len(moved) == 14

    def test_resolving_twice_yields_one_resolved_row(self, store, connector) -> None:
        store.resolve_violation("acme", "V1")
        second = store.resolve_violation("acme", "V1")
        assert second.already_resolved is True
        assert connector.ids("acme-sheet", RESOLVED).count("V1") == 1
        assert connector.count("append_row") == 1

    def test_failed_delete_then_retry_finishes_move(self, store, connector) -> None:
        connector.fail_next("delete_row", SheetsErrorCode.UNKNOWN)
        with pytest.raises(SheetsError):
            store.resolve_violation("acme", "V2")
        assert "V2" in connector.ids("acme-sheet", ACTIVE)
        assert "V2" in connector.ids("acme-sheet", RESOLVED)

        outcome = store.resolve_violation("acme", "V2")
        # This call did the delete, so the violation was not already resolved.
        assert outcome.already_resolved is False
        assert outcome.resolved_at.date() == NOW.date()
        assert "V2" not in connector.ids("acme-sheet", ACTIVE)
        assert connector.ids("acme-sheet", RESOLVED).count("V2") == 1
        assert connector.count("append_row") == 1

    def test_already_resolved_reports_stored_date(self, store) -> None:
        outcome = store.resolve_violation("acme", "R1")
        assert outcome.already_resolved is True
        assert outcome.resolved_at == datetime(2026, 10, 5, tzinfo=timezone.utc)

    def test_overlapping_resolves_in_one_sheet(self, store, connector, monkeypatch) -> None:
        appended = threading.Event()
        release = threading.Event()
        original_append = connector.append_row

        def append_then_pause(spreadsheet_id, tab_name, row):
            original_append(spreadsheet_id, tab_name, row)
            if not appended.is_set():
                appended.set()
                release.wait(5)

        monkeypatch.setattr(connector, "append_row", append_then_pause)
        errors: list[BaseException] = []

        def resolve(violation_id: str) -> None:
            try:
                store.resolve_violation("acme", violation_id)
            except Exception as exc:
                errors.append(exc)

        first = threading.Thread(target=resolve, args=("V2",))
        first.start()
        assert appended.wait(5)
        second = threading.Thread(target=resolve, args=("V1",))
        second.start()
        second.join(0.2)
        # The second resolve waits for the first to finish its delete.
        assert second.is_alive()
        release.set()
        first.join(5)
        second.join(5)

        assert errors == []
        assert connector.ids("acme-sheet", ACTIVE) == ["", ""]
        assert connector.ids("acme-sheet", RESOLVED) == ["R1", "V2", "V1"]
        assert connector.tab("acme-sheet", ACTIVE)[-1][4] == "B000CCC333"

    def test_rows_shifted_by_hand_edit_before_delete(self, store, connector, monkeypatch) -> None:
        original_append = connector.append_row

        def append_then_insert_row(spreadsheet_id, tab_name, row):
            original_append(spreadsheet_id, tab_name, row)
            connector.tab("acme-sheet", ACTIVE).insert(1, ["V0", "2026-10-19"])

        monkeypatch.setattr(connector, "append_row", append_then_insert_row)
        store.resolve_violation("acme", "V1")
        assert connector.ids("acme-sheet", ACTIVE)[:2] == ["V0", "V2"]
        assert "V1" not in connector.ids("acme-sheet", ACTIVE)

    def test_row_removed_by_hand_before_delete(self, store, connector, monkeypatch) -> None:
        original_append = connector.append_row

        def append_then_remove_row(spreadsheet_id, tab_name, row):
            original_append(spreadsheet_id, tab_name, row)
            del connector.tab("acme-sheet", ACTIVE)[1]

        monkeypatch.setattr(connector, "append_row", append_then_remove_row)
        outcome = store.resolve_violation("acme", "V1")
        assert outcome.already_resolved is False
        assert connector.count("delete_row") == 0
        assert connector.ids("acme-sheet", ACTIVE)[0] == "V2"

    def test_one_write_lock_per_spreadsheet(self, store) -> None:
        store.resolve_violation("acme", "V1")
        store.resolve_violation("acme", "V2")
        assert list(store._write_locks) == ["acme-sheet"]

    @pytest.mark.parametrize("write", ["update", "bulk"])
    def test_updates_wait_for_the_sheet_write_lock(self, store, connector, write) -> None:
        def run() -> None:
            if write == "update":
                store.update_by_id("acme", "V1", ViolationUpdate(notes="late"))
            else:
                store.bulk_update("acme", [BulkUpdateItem(violation_id="V1", updates=ViolationUpdate(notes="late"))])

        store.tabs("acme-sheet")
        lock = store._write_lock("acme-sheet")
        lock.acquire()
        worker = threading.Thread(target=run)
        try:
            worker.start()
            worker.join(0.2)
            assert worker.is_alive()
            assert connector.count("batch_update_values") == 0
        finally:
            lock.release()
        worker.join(5)
        assert connector.tab("acme-sheet", ACTIVE)[1][12] == "late"

    def test_unknown_violation(self, store) -> None:
        with pytest.raises(ViolationNotFoundError):
            store.resolve_violation("acme", "V404")

    def test_other_rows_untouched(self, store, connector) -> None:
        store.resolve_violation("acme", "V1")
        assert connector.ids("acme-sheet", ACTIVE)[:1] == ["V2"]
        assert connector.ids("acme-sheet", RESOLVED)[0] == "R1"


# ---------------------------------------------------------------------------
# Client overview
# ---------------------------------------------------------------------------


class TestClientsOverview:
    def test_basic_uses_master_counters(self, store) -> None:
        clients = store.clients_overview()
        assert [c.subdomain for c in clients] == ["acme", "beta-store", "broken"]
        acme = clients[0]
        assert acme.violations_48h == 1
        assert acme.violations_72h == 2
        assert acme.resolved_total == 4
        assert acme.at_risk_sales == 1500.0

    def test_basic_is_cached(self, store, connector, clock) -> None:
        store.clients_overview()
        store.clients_overview()
        assert connector.count("get_values") == 1
        # Client list expires first; master rows are still cached.
        clock.advance(120)
        store.clients_overview()
        assert connector.count("get_values") == 1
        clock.advance(180)
        store.clients_overview()
        assert connector.count("get_values") == 2

    def test_detailed_recounts_from_client_tabs(self, store) -> None:
        clients = {c.subdomain: c for c in store.clients_overview(detailed=True)}
        acme = clients["acme"]
        # V1 imported 26h ago and the id-less row today; V2 is nine days old.
        assert acme.violations_48h == 2
        assert acme.violations_72h == 2
        assert acme.resolved_this_month == 1

    def test_detailed_survives_unreadable_client(self, store) -> None:
        clients = {c.subdomain: c for c in store.clients_overview(detailed=True)}
        beta = clients["beta-store"]
        assert beta.resolved_this_month == 0
        assert beta.resolved_total == 2

    def test_basic_and_detailed_cached_separately(self, store) -> None:
        basic = store.clients_overview()
        detailed = store.clients_overview(detailed=True)
        assert basic[0].violations_48h == 1
        assert detailed[0].violations_48h == 2


@pytest.fixture()
def uncached_store(connector) -> ViolationStore:
    return ViolationStore(
        connector,
        MASTER_ID,
        master_tab_name=MASTER_TAB,
        root_domain=ROOT_DOMAIN,
        tenant_cache=TTLCache(0),
        retry=RetryPolicy(sleep=lambda s: None),
    )


class TestZeroTTL:
    def test_every_lookup_reads_the_sheet(self, uncached_store, connector) -> None:
        uncached_store.get_tenant("acme")
        uncached_store.get_tenant("acme")
        assert connector.count("get_values") == 2
