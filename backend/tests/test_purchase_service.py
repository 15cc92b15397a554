from decimal import Decimal

import pytest

from shopledger.errors import (
    ExceedsDueError,
    InsufficientBalanceError,
    InvalidProductError,
    InventoryItemNotFoundError,
    ValidationError,
)
from shopledger.extensions import db
from shopledger.models import Account, Purchase, Supplier, Transaction
from shopledger.services import account_balance_service as ledger
from shopledger.services import inventory_service, purchase_service, supplier_service
from shopledger.services.account_balance_service import ByAccountId, ByLegacyType


def _balance(account):
    return db.session.get(Account, account.id).balance


def _purchase_entries(purchase_id):
    return (
        Transaction.query
        .filter_by(reference_type="purchase", reference_id=purchase_id)
        .order_by(Transaction.id)
        .all()
    )


@pytest.fixture
def purchase(cash_account, product, supplier, lines):
    """10 x product at 30.00, paid 300 of 500 from the cash box."""
    result = purchase_service.create_purchase(
        lines((product, 10, "30.00")), "500", "300", ByAccountId(cash_account.id), supplier.id,
    )
    return result["purchase"]


# =============================================================================
# CREATE
# =============================================================================


class TestCreatePurchase:
    def test_create_touches_every_store(self, purchase, cash_account, product, supplier):
        assert purchase.payment_due == Decimal("200.00")
        assert _balance(cash_account) == Decimal("700.00")

        [entry] = _purchase_entries(purchase.id)
        assert entry.entry_source == "invoice"
        assert entry.transaction_type == "debit"
        assert entry.amount == Decimal("300.00")
        assert entry.balance_after_transaction == Decimal("700.00")

        item = inventory_service.get_item(product.id)
        assert item.stock_qty == 10
        assert item.average_purchase_price == Decimal("30.0000")

        supplier = db.session.get(Supplier, supplier.id)
        assert supplier.total_purchase == Decimal("500.00")
        assert supplier.total_due == Decimal("200.00")
        assert supplier.supplied_products == ["Rice 5kg"]
        [history] = supplier.history
        assert history.type == "purchase"
        assert history.due_after_payment == Decimal("200.00")

    def test_unpaid_purchase_needs_no_account(self, db_session, product, lines):
        result = purchase_service.create_purchase(lines((product, 2, "4")), "8", "0", None)

        assert result["new_balance"] is None
        assert _purchase_entries(result["purchase"].id) == []
        assert inventory_service.get_item(product.id).stock_qty == 2

    def test_new_balances_include_defaults(self, cash_account, bank_account, product, lines):
        result = purchase_service.create_purchase(lines((product, 1, "10")), "10", "10", ByLegacyType("bank"))
        assert result["new_balances"] == {
            cash_account.id: Decimal("1000.00"),
            bank_account.id: Decimal("490.00"),
        }
        assert result["purchase"].payment_type == "bank"
        assert result["purchase"].payment_account_id == bank_account.id

    def test_paid_above_total_rejected(self, cash_account, product, lines):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(lines((product, 1, "10")), "10", "11", ByAccountId(cash_account.id))
        assert Purchase.query.count() == 0

    def test_unknown_product_rejected_before_writes(self, cash_account, product, lines):
        bad = lines((product, 1, "10"))
        bad[0]["product_id"] = 9999
        with pytest.raises(InvalidProductError):
            purchase_service.create_purchase(bad, "10", "10", ByAccountId(cash_account.id))
        assert Purchase.query.count() == 0
        assert _balance(cash_account) == Decimal("1000.00")

    def test_insufficient_balance_rolls_back(self, cash_account, product, lines):
        with pytest.raises(InsufficientBalanceError):
            purchase_service.create_purchase(lines((product, 1, "2000")), "2000", "2000", ByAccountId(cash_account.id))

        assert Purchase.query.count() == 0
        assert _balance(cash_account) == Decimal("1000.00")
        with pytest.raises(InventoryItemNotFoundError):
            inventory_service.get_item(product.id)


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdatePurchase:
    def test_same_account_posts_single_delta(self, purchase, cash_account, product, supplier, lines):
        purchase_service.update_purchase(
            purchase.id, lines((product, 10, "30.00")), "500", "200", ByAccountId(cash_account.id), supplier.id,
        )

        entries = _purchase_entries(purchase.id)
        assert [(e.entry_source, e.transaction_type, e.amount) for e in entries] == [
            ("invoice", "debit", Decimal("300.00")),
            ("invoice_update", "credit", Decimal("100.00")),
        ]
        assert _balance(cash_account) == Decimal("800.00")
        assert ledger.verify_account_ledger(cash_account.id)["ok"]

        updated = purchase_service.get_purchase(purchase.id)
        assert updated.paid_amount == Decimal("200.00")
        assert updated.payment_due == Decimal("300.00")

        supplier = db.session.get(Supplier, supplier.id)
        assert supplier.total_purchase == Decimal("500.00")
        assert supplier.total_due == Decimal("300.00")
        assert [h.type for h in supplier.history] == ["purchase", "updated_purchase"]

    def test_unchanged_payment_posts_nothing(self, purchase, cash_account, product, supplier, lines):
        purchase_service.update_purchase(
            purchase.id, lines((product, 10, "30.00")), "500", "300", ByAccountId(cash_account.id), supplier.id,
        )
        assert len(_purchase_entries(purchase.id)) == 1
        assert _balance(cash_account) == Decimal("700.00")

    def test_moving_payment_between_accounts(self, purchase, cash_account, bank_account, product, supplier, lines):
        purchase_service.update_purchase(
            purchase.id, lines((product, 10, "30.00")), "500", "200", ByAccountId(bank_account.id), supplier.id,
        )

        assert _balance(cash_account) == Decimal("1000.00")
        assert _balance(bank_account) == Decimal("300.00")
        assert [e.entry_source for e in _purchase_entries(purchase.id)] == [
            "invoice", "invoice_update_return_old", "invoice_update_apply_new",
        ]
        assert purchase_service.get_purchase(purchase.id).payment_account_id == bank_account.id
        assert ledger.verify_account_ledger(cash_account.id)["ok"]
        assert ledger.verify_account_ledger(bank_account.id)["ok"]

    def test_first_payment_on_unpaid_purchase_becomes_invoice_entry(self, cash_account, product, lines):
        created = purchase_service.create_purchase(lines((product, 2, "4")), "8", "0", None)["purchase"]

        purchase_service.update_purchase(created.id, lines((product, 2, "4")), "8", "8", ByAccountId(cash_account.id))

        [entry] = _purchase_entries(created.id)
        assert (entry.entry_source, entry.amount) == ("invoice", Decimal("8.00"))
        assert _balance(cash_account) == Decimal("992.00")

    def test_changed_lines_recompute_inventory(self, purchase, cash_account, product, other_product, lines):
        purchase_service.update_purchase(
            purchase.id, lines((product, 4, "25.00"), (other_product, 5, "2.00")), "110", "110",
            ByAccountId(cash_account.id),
        )

        item = inventory_service.get_item(product.id)
        assert item.stock_qty == 4
        assert item.average_purchase_price == Decimal("25.0000")
        assert inventory_service.get_item(other_product.id).stock_qty == 5
        assert _balance(cash_account) == Decimal("890.00")

    def test_moving_to_other_supplier(self, purchase, cash_account, product, supplier, lines):
        other = supplier_service.create_supplier({"name": "Dhaka Wholesale"})
        purchase_service.update_purchase(
            purchase.id, lines((product, 10, "30.00")), "500", "300", ByAccountId(cash_account.id), other.id,
        )

        old = db.session.get(Supplier, supplier.id)
        new = db.session.get(Supplier, other.id)
        assert (old.total_purchase, old.total_due) == (Decimal("0"), Decimal("0"))
        assert (new.total_purchase, new.total_due) == (Decimal("500.00"), Decimal("200.00"))

    def test_update_after_due_payment_on_same_account(self, cash_account, product, supplier, lines):
        created = purchase_service.create_purchase(
            lines((product, 10, "30.00")), "500", "0", None, supplier.id,
        )["purchase"]
        purchase_service.pay_supplier_due(created.id, "300", ByAccountId(cash_account.id))

        purchase_service.update_purchase(
            created.id, lines((product, 10, "30.00")), "500", "300", ByAccountId(cash_account.id), supplier.id,
        )

        entries = _purchase_entries(created.id)
        assert [e.entry_source for e in entries] == ["supplier_due_payment"]
        assert sum(e.signed_amount for e in entries) == Decimal("-300.00")
        assert _balance(cash_account) == Decimal("700.00")
        assert ledger.verify_account_ledger(cash_account.id)["ok"]

        supplier = db.session.get(Supplier, supplier.id)
        assert supplier.total_due == Decimal("200.00")

    def test_update_returns_each_account_its_own_share(self, purchase, cash_account, bank_account, product,
                                                      supplier, lines):
        purchase_service.pay_supplier_due(purchase.id, "100", ByAccountId(bank_account.id))
        assert _balance(bank_account) == Decimal("400.00")

        purchase_service.update_purchase(
            purchase.id, lines((product, 10, "30.00")), "500", "400", ByAccountId(bank_account.id), supplier.id,
        )

        assert _balance(cash_account) == Decimal("1000.00")
        assert _balance(bank_account) == Decimal("100.00")
        entries = _purchase_entries(purchase.id)
        assert [e.entry_source for e in entries] == [
            "invoice", "supplier_due_payment", "invoice_update_return_old", "invoice_update_apply_new",
        ]
        assert sum(e.signed_amount for e in entries) == -purchase_service.get_purchase(purchase.id).paid_amount
        assert ledger.verify_account_ledger(cash_account.id)["ok"]
        assert ledger.verify_account_ledger(bank_account.id)["ok"]

    def test_update_keeps_invoice_account_and_returns_due_payment_account(
        self, purchase, cash_account, bank_account, product, supplier, lines,
    ):
        purchase_service.pay_supplier_due(purchase.id, "100", ByAccountId(bank_account.id))

        purchase_service.update_purchase(
            purchase.id, lines((product, 10, "30.00")), "500", "400", ByAccountId(cash_account.id), supplier.id,
        )

        assert _balance(cash_account) == Decimal("600.00")
        assert _balance(bank_account) == Decimal("500.00")
        assert sum(e.signed_amount for e in _purchase_entries(purchase.id)) == Decimal("-400.00")


# =============================================================================
# PAY DUE
# =============================================================================


class TestPaySupplierDue:
    def test_pay_due(self, purchase, cash_account, supplier):
        result = purchase_service.pay_supplier_due(purchase.id, "150", ByLegacyType("cash"))

        assert result["new_balance"] == Decimal("550.00")
        assert result["purchase"].paid_amount == Decimal("450.00")
        assert result["purchase"].payment_due == Decimal("50.00")
        assert _purchase_entries(purchase.id)[-1].entry_source == "supplier_due_payment"

        supplier = db.session.get(Supplier, supplier.id)
        assert supplier.total_due == Decimal("50.00")
        assert supplier.history[-1].type == "due_payment"

    def test_payment_above_due_rejected(self, purchase, cash_account):
        with pytest.raises(ExceedsDueError) as excinfo:
            purchase_service.pay_supplier_due(purchase.id, "200.01", ByAccountId(cash_account.id))

        assert excinfo.value.context["due_amount"] == Decimal("200.00")
        assert _balance(cash_account) == Decimal("700.00")

    def test_exact_due_settles_purchase(self, purchase, cash_account):
        purchase_service.pay_supplier_due(purchase.id, "200", ByAccountId(cash_account.id))
        assert purchase_service.list_purchases(due_only=True) == []


# =============================================================================
# DELETE
# =============================================================================


class TestDeletePurchase:
    def test_delete_reverts_everything(self, purchase, cash_account, product, supplier):
        purchase_service.pay_supplier_due(purchase.id, "50", ByAccountId(cash_account.id))

        result = purchase_service.delete_purchase(purchase.id)

        assert result["new_balances"] == {cash_account.id: Decimal("1000.00")}
        assert _purchase_entries(purchase.id) == []
        assert Purchase.query.count() == 0
        assert inventory_service.get_item(product.id).stock_qty == 0

        supplier = db.session.get(Supplier, supplier.id)
        assert supplier.total_purchase == Decimal("0")
        assert supplier.total_due == Decimal("0")
        assert ledger.verify_account_ledger(cash_account.id)["ok"]


# =============================================================================
# FAILURE MID-WORKFLOW
# =============================================================================


def _fail(*args, **kwargs):
    raise RuntimeError("supplier store unavailable")


class TestWorkflowFailure:
    def test_atomic_create_leaves_no_trace(self, monkeypatch, cash_account, product, supplier, lines):
        monkeypatch.setattr(supplier_service, "add_supplied_products", _fail)

        with pytest.raises(RuntimeError):
            purchase_service.create_purchase(
                lines((product, 10, "30.00")), "500", "300", ByAccountId(cash_account.id), supplier.id,
            )

        assert Purchase.query.count() == 0
        assert _balance(cash_account) == Decimal("1000.00")
        assert Transaction.query.filter_by(reference_type="purchase").count() == 0
        with pytest.raises(InventoryItemNotFoundError):
            inventory_service.get_item(product.id)

    def test_compensated_create_unwinds_committed_steps(
        self, monkeypatch, compensating, cash_account, product, supplier, lines,
    ):
        monkeypatch.setattr(supplier_service, "add_supplied_products", _fail)

        with pytest.raises(RuntimeError):
            purchase_service.create_purchase(
                lines((product, 10, "30.00")), "500", "300", ByAccountId(cash_account.id), supplier.id,
            )

        assert Purchase.query.count() == 0
        assert _balance(cash_account) == Decimal("1000.00")
        assert Transaction.query.filter_by(reference_type="purchase").count() == 0
        assert ledger.verify_account_ledger(cash_account.id)["ok"]

        item = inventory_service.get_item(product.id)
        assert item.stock_qty == 0
        assert item.purchase_history == []

        supplier = db.session.get(Supplier, supplier.id)
        assert supplier.total_purchase == Decimal("0")
        assert supplier.history == []

    def test_compensated_delete_restores_purchase_effects(
        self, monkeypatch, compensating, purchase, cash_account, product, supplier,
    ):
        monkeypatch.setattr(purchase_service, "_delete_purchase_row", _fail)

        with pytest.raises(RuntimeError):
            purchase_service.delete_purchase(purchase.id)

        assert purchase_service.get_purchase(purchase.id).total_amount == Decimal("500.00")
        assert _balance(cash_account) == Decimal("700.00")
        assert [e.entry_source for e in _purchase_entries(purchase.id)] == ["invoice"]
        assert inventory_service.get_item(product.id).stock_qty == 10

        supplier = db.session.get(Supplier, supplier.id)
        assert supplier.total_purchase == Decimal("500.00")
        assert supplier.total_due == Decimal("200.00")
