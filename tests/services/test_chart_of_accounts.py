"""
ChartOfAccountsService: per-tenant chart maintenance.

Verifies:
- Codes are unique per tenant, not globally
- Parent type rules and cycle detection on re-parent
- Referenced accounts keep their type and cannot be deleted
- Inactive accounts reject postings but remain reportable
- Seeding is repeatable
"""

from datetime import date

import pytest

from ledger_config.loader import load_chart_seeds
from ledger_kernel.domain.policy import HierarchyRules, KernelPolicy
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountInUseError,
    AccountNotFoundError,
    DuplicateAccountCodeError,
    InvalidHierarchyError,
)
from ledger_kernel.models.account import AccountType, NormalBalance
from ledger_kernel.services.chart_of_accounts import AccountSeed, ChartOfAccountsService


class TestCreateAccount:

    def test_create_root_and_child(self, chart, tenant_id, test_actor_id):
        root = chart.create_account(
            tenant_id, code="1", name="Activos", account_type=AccountType.ASSET
        )
        child = chart.create_account(
            tenant_id,
            code="1105",
            name="Caja",
            account_type="asset",
            parent_id=root.account_id,
            tags=["cash"],
            actor_id=test_actor_id,
        )
        assert child.parent_id == root.account_id
        assert child.account_type == AccountType.ASSET
        assert child.is_active
        assert child.tags == ("cash",)

    def test_code_is_trimmed(self, chart, tenant_id):
        account = chart.create_account(
            tenant_id, code=" 4135 ", name="Ventas", account_type=AccountType.REVENUE
        )
        assert account.code == "4135"

    def test_empty_code_rejected(self, chart, tenant_id):
        with pytest.raises(ValueError):
            chart.create_account(tenant_id, code="  ", name="X", account_type="asset")

    def test_duplicate_code_rejected(self, chart, tenant_id):
        chart.create_account(tenant_id, code="1105", name="Caja", account_type="asset")
        with pytest.raises(DuplicateAccountCodeError) as exc_info:
            chart.create_account(tenant_id, code="1105", name="Otra", account_type="asset")
        assert exc_info.value.account_code == "1105"

    def test_same_code_in_two_tenants(self, chart, tenant_id, other_tenant_id):
        a = chart.create_account(tenant_id, code="1105", name="Caja", account_type="asset")
        b = chart.create_account(other_tenant_id, code="1105", name="Caja", account_type="asset")
        assert a.account_id != b.account_id

    def test_parent_of_other_tenant_not_found(self, chart, tenant_id, other_tenant_id):
        foreign = chart.create_account(other_tenant_id, code="1", name="Activos", account_type="asset")
        with pytest.raises(AccountNotFoundError):
            chart.create_account(
                tenant_id, code="11", name="Disponible", account_type="asset",
                parent_id=foreign.account_id,
            )

    def test_expense_under_asset_rejected(self, chart, tenant_id):
        asset = chart.create_account(tenant_id, code="1", name="Activos", account_type="asset")
        with pytest.raises(InvalidHierarchyError, match="cannot be nested"):
            chart.create_account(
                tenant_id, code="5105", name="Gastos", account_type="expense",
                parent_id=asset.account_id,
            )

    def test_policy_can_allow_mixed_nesting(self, session, tenant_id):
        rules = HierarchyRules(
            allowed_children={
                AccountType.ASSET: frozenset({AccountType.ASSET, AccountType.EXPENSE}),
            }
        )
        chart = ChartOfAccountsService(session, KernelPolicy(hierarchy=rules))
        asset = chart.create_account(tenant_id, code="1", name="Activos", account_type="asset")
        child = chart.create_account(
            tenant_id, code="1-5", name="Mixta", account_type="expense",
            parent_id=asset.account_id,
        )
        assert child.parent_id == asset.account_id

    def test_normal_balance(self):
        assert ChartOfAccountsService.normal_balance("liability") == NormalBalance.CREDIT


class TestUpdateAccount:

    def test_rename(self, chart, tenant_id):
        account = chart.create_account(tenant_id, code="1105", name="Caja", account_type="asset")
        updated = chart.update_account(tenant_id, account.account_id, name="Caja General")
        assert updated.name == "Caja General"

    def test_reparent_into_own_subtree_rejected(self, chart, tenant_id):
        root = chart.create_account(tenant_id, code="1", name="Activos", account_type="asset")
        child = chart.create_account(
            tenant_id, code="11", name="Disponible", account_type="asset",
            parent_id=root.account_id,
        )
        with pytest.raises(InvalidHierarchyError, match="cycle"):
            chart.update_account(tenant_id, root.account_id, parent_id=child.account_id)

    def test_move_to_root(self, chart, tenant_id):
        root = chart.create_account(tenant_id, code="1", name="Activos", account_type="asset")
        child = chart.create_account(
            tenant_id, code="11", name="Disponible", account_type="asset",
            parent_id=root.account_id,
        )
        moved = chart.update_account(tenant_id, child.account_id, parent_id=None)
        assert moved.parent_id is None

    def test_retype_unreferenced_leaf(self, chart, tenant_id):
        account = chart.create_account(tenant_id, code="9", name="Temporal", account_type="asset")
        updated = chart.update_account(tenant_id, account.account_id, account_type="liability")
        assert updated.account_type == AccountType.LIABILITY

    def test_retype_with_incompatible_child_rejected(self, chart, tenant_id):
        root = chart.create_account(tenant_id, code="1", name="Activos", account_type="asset")
        chart.create_account(
            tenant_id, code="11", name="Disponible", account_type="asset",
            parent_id=root.account_id,
        )
        with pytest.raises(InvalidHierarchyError):
            chart.update_account(tenant_id, root.account_id, account_type="liability")

    def test_retype_referenced_account_rejected(self, chart, ledger, tenant_id):
        ledger.sale(date(2024, 1, 10), 100000, 19000)
        with pytest.raises(AccountInUseError):
            chart.update_account(
                tenant_id, ledger.account("413505").account_id, account_type="liability"
            )
        assert chart.get_account_by_code(tenant_id, "413505").account_type == AccountType.REVENUE

    def test_rename_referenced_account_allowed(self, chart, ledger, tenant_id):
        ledger.sale(date(2024, 1, 10), 100000, 19000)
        updated = chart.update_account(
            tenant_id, ledger.account("413505").account_id, name="Ventas nacionales"
        )
        assert updated.name == "Ventas nacionales"


class TestActivation:

    def test_inactive_account_rejects_postings(self, chart, ledger, tenant_id):
        chart.deactivate_account(tenant_id, ledger.account("413505").account_id)
        with pytest.raises(AccountInactiveError) as exc_info:
            ledger.sale(date(2024, 1, 10), 100000, 19000)
        assert exc_info.value.account_code == "413505"

    def test_inactive_account_still_listed(self, chart, ledger, tenant_id):
        account_id = ledger.account("5305").account_id
        chart.deactivate_account(tenant_id, account_id)
        all_codes = {a.code for a in chart.list_accounts(tenant_id)}
        active_codes = {a.code for a in chart.list_accounts(tenant_id, include_inactive=False)}
        assert "5305" in all_codes
        assert "5305" not in active_codes

    def test_reactivate(self, chart, ledger, tenant_id):
        account_id = ledger.account("413505").account_id
        chart.deactivate_account(tenant_id, account_id)
        chart.reactivate_account(tenant_id, account_id)
        assert ledger.sale(date(2024, 1, 10), 100000, 19000).entry_number == 1


class TestDeleteAccount:

    def test_delete_unreferenced_leaf(self, chart, tenant_id):
        account = chart.create_account(tenant_id, code="9", name="Temporal", account_type="asset")
        chart.delete_account(tenant_id, account.account_id)
        with pytest.raises(AccountNotFoundError):
            chart.get_account(tenant_id, account.account_id)

    def test_delete_referenced_rejected(self, chart, ledger, tenant_id):
        ledger.sale(date(2024, 1, 10), 100000, 19000)
        with pytest.raises(AccountInUseError):
            chart.delete_account(tenant_id, ledger.account("110505").account_id)
        assert chart.is_referenced(ledger.account("110505").account_id)

    def test_delete_parent_rejected(self, chart, tenant_id):
        root = chart.create_account(tenant_id, code="1", name="Activos", account_type="asset")
        chart.create_account(
            tenant_id, code="11", name="Disponible", account_type="asset",
            parent_id=root.account_id,
        )
        with pytest.raises(InvalidHierarchyError, match="children"):
            chart.delete_account(tenant_id, root.account_id)


class TestQueries:

    def test_other_tenant_account_invisible(self, chart, tenant_id, other_tenant_id):
        account = chart.create_account(tenant_id, code="1105", name="Caja", account_type="asset")
        with pytest.raises(AccountNotFoundError):
            chart.get_account(other_tenant_id, account.account_id)
        assert chart.list_accounts(other_tenant_id) == []

    def test_unknown_code(self, chart, tenant_id):
        with pytest.raises(AccountNotFoundError):
            chart.get_account_by_code(tenant_id, "999")

    def test_list_ordered_by_code(self, chart, puc_chart, tenant_id):
        codes = [a.code for a in chart.list_accounts(tenant_id)]
        assert codes == sorted(codes)

    def test_children_and_descendants(self, chart, puc_chart, tenant_id):
        cash_group = puc_chart["11"].account_id
        direct = [a.code for a in chart.list_children(tenant_id, cash_group)]
        recursive = [a.code for a in chart.list_children(tenant_id, cash_group, recursive=True)]
        assert direct == ["1105", "1110"]
        assert recursive == ["1105", "110505", "1110", "111005"]

    def test_leaf_has_no_children(self, chart, puc_chart, tenant_id):
        assert chart.list_children(tenant_id, puc_chart["110505"].account_id) == []


class TestSeedChart:

    def test_seed_is_repeatable(self, chart, tenant_id, captured_logs):
        first = chart.seed_chart(tenant_id, load_chart_seeds())
        second = chart.seed_chart(tenant_id, load_chart_seeds())
        assert len(first) == len(load_chart_seeds())
        assert second == []
        seeded = [r for r in captured_logs() if r["message"] == "chart_seeded"]
        assert [r["created_count"] for r in seeded] == [len(first), 0]

    def test_seed_links_parents(self, chart, puc_chart, tenant_id):
        assert puc_chart["110505"].parent_id == puc_chart["1105"].account_id

    def test_missing_parent_rejected(self, chart, tenant_id):
        seeds = [AccountSeed("11", "Disponible", AccountType.ASSET, parent_code="1")]
        with pytest.raises(AccountNotFoundError):
            chart.seed_chart(tenant_id, seeds)
