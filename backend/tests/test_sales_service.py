from decimal import Decimal

import pytest

from shopledger.errors import (
    ExceedsDueError,
    InsufficientStockError,
    InvalidAmountError,
    SaleNotFoundError,
    ValidationError,
)
from shopledger.extensions import db
from shopledger.models import Account, Customer, Sale, Transaction
from shopledger.services import account_balance_service as ledger
from shopledger.services import inventory_service, sales_service
from shopledger.services.account_balance_service import ByAccountId


def _balance(account):
    return db.session.get(Account, account.id).balance


def _sale_entries(sale_id):
    return (
        Transaction.query
        .filter_by(reference_type="sale", reference_id=sale_id)
        .order_by(Transaction.id)
        .all()
    )


@pytest.fixture
def stocked(cash_account, product):
    """20 units of product on hand at 8.00."""
    inventory_service.receive_stock(product.id, 20, "8.00", None)
    return product


@pytest.fixture
def sale(stocked, customer, lines):
    """4 x product at 12.50 for the regular customer, fully paid into cash."""
    result = sales_service.create_sale(lines((stocked, 4, "12.50")), "50", "50", customer_id=customer.id)
    return result["sale"]


def _stock(product):
    return inventory_service.get_item(product.id).stock_qty


# =============================================================================
# CREATE
# =============================================================================


class TestCreateSale:
    def test_paid_sale_goes_to_default_cash(self, sale, cash_account, stocked, customer):
        assert sale.due == Decimal("0")
        assert sale.account_id == cash_account.id
        assert sale.payment_method == "cash"
        assert _balance(cash_account) == Decimal("1050.00")
        assert _stock(stocked) == 16

        [entry] = _sale_entries(sale.id)
        assert (entry.entry_source, entry.transaction_type) == ("sale_memo", "credit")

        customer = db.session.get(Customer, customer.id)
        assert customer.total_sales == Decimal("50.00")
        assert customer.total_due == Decimal("0")
        assert customer.purchased_products == ["Rice 5kg"]
        assert [h.type for h in customer.history] == ["sale"]

    def test_unknown_customer_name_creates_temporary_customer(self, stocked, lines):
        result = sales_service.create_sale(
            lines((stocked, 4, "12.50")), "50", "30", customer_name="Walk-in Jamal", memo_no="M-1",
        )
        sale = result["sale"]
        assert result["memo_id"] == sale.id
        assert result["new_balance"] == Decimal("1030.00")
        assert sale.due == Decimal("20.00")

        customer = db.session.get(Customer, sale.customer_id)
        assert customer.customer_type == "temporary"
        assert customer.total_due == Decimal("20.00")

    def test_known_customer_name_matches_case_insensitively(self, stocked, customer, lines):
        result = sales_service.create_sale(lines((stocked, 1, "12.50")), "12.50", "10", customer_name="rahim")
        assert result["sale"].customer_id == customer.id
        assert Customer.query.count() == 1

    def test_overpayment_becomes_advance(self, stocked, customer, cash_account, lines):
        result = sales_service.create_sale(lines((stocked, 4, "12.50")), "50", "60", customer_id=customer.id)

        assert result["sale"].due == Decimal("0")
        assert result["sale"].advance == Decimal("10.00")
        assert db.session.get(Customer, customer.id).advance == Decimal("10.00")
        assert _balance(cash_account) == Decimal("1060.00")

    def test_due_without_customer_rejected(self, stocked, cash_account, lines):
        with pytest.raises(ValidationError):
            sales_service.create_sale(lines((stocked, 4, "12.50")), "50", "10")
        assert Sale.query.count() == 0

    def test_negative_paid_rejected(self, stocked, customer, lines):
        with pytest.raises(InvalidAmountError):
            sales_service.create_sale(lines((stocked, 1, "12.50")), "12.50", "-1", customer_id=customer.id)

    def test_insufficient_stock_rolls_back_whole_memo(self, stocked, other_product, cash_account, lines):
        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(lines((stocked, 4, "12.50"), (other_product, 1, "3")), "53", "53")

        assert Sale.query.count() == 0
        assert _stock(stocked) == 20
        assert _balance(cash_account) == Decimal("1000.00")

    def test_compensated_insufficient_stock_restores_issued_lines(
        self, compensating, stocked, other_product, cash_account, lines,
    ):
        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                lines((stocked, 4, "12.50"), (other_product, 1, "3")), "53", "53", customer_name="Jamal",
            )

        assert Sale.query.count() == 0
        assert Customer.query.count() == 0
        assert _stock(stocked) == 20
        assert inventory_service.get_item(stocked.id).sale_history == []
        assert _balance(cash_account) == Decimal("1000.00")
        assert ledger.verify_account_ledger(cash_account.id)["ok"]


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdateSale:
    def test_lower_paid_on_same_account_posts_debit_delta(self, sale, cash_account, customer, stocked, lines):
        sales_service.update_sale(sale.id, lines((stocked, 4, "12.50")), "50", "30")

        assert [(e.entry_source, e.transaction_type, e.amount) for e in _sale_entries(sale.id)] == [
            ("sale_memo", "credit", Decimal("50.00")),
            ("sale_update", "debit", Decimal("20.00")),
        ]
        assert _balance(cash_account) == Decimal("1030.00")

        customer = db.session.get(Customer, customer.id)
        assert customer.total_sales == Decimal("50.00")
        assert customer.total_due == Decimal("20.00")
        assert [h.type for h in customer.history] == ["sale", "updated_sale"]

    def test_moving_receipt_to_bank(self, sale, cash_account, bank_account, stocked, lines):
        sales_service.update_sale(sale.id, lines((stocked, 4, "12.50")), "50", "50", ByAccountId(bank_account.id))

        assert _balance(cash_account) == Decimal("1000.00")
        assert _balance(bank_account) == Decimal("550.00")
        assert [e.entry_source for e in _sale_entries(sale.id)] == [
            "sale_memo", "sale_update_return_old", "sale_update_apply_new",
        ]
        assert sales_service.get_sale(sale.id).account_id == bank_account.id

    def test_changed_quantity_moves_stock(self, sale, stocked, lines):
        sales_service.update_sale(sale.id, lines((stocked, 6, "12.50")), "75", "75")

        assert _stock(stocked) == 14
        assert [r.qty for r in inventory_service.get_item(stocked.id).sale_history] == [6]

    def test_update_beyond_stock_leaves_memo_untouched(self, sale, stocked, cash_account, lines):
        with pytest.raises(InsufficientStockError):
            sales_service.update_sale(sale.id, lines((stocked, 21, "12.50")), "262.50", "262.50")

        assert _stock(stocked) == 16
        assert sales_service.get_sale(sale.id).total == Decimal("50.00")
        assert _balance(cash_account) == Decimal("1050.00")

    def test_update_after_due_collection_on_same_account(self, stocked, customer, cash_account, lines):
        created = sales_service.create_sale(lines((stocked, 4, "12.50")), "50", "30", customer_id=customer.id)
        sale_id = created["memo_id"]
        sales_service.receive_customer_due(sale_id, "20")

        sales_service.update_sale(sale_id, lines((stocked, 4, "12.50")), "50", "50")

        entries = _sale_entries(sale_id)
        assert [e.entry_source for e in entries] == ["sale_memo", "customer_due_payment"]
        assert sum(e.signed_amount for e in entries) == Decimal("50.00")
        assert _balance(cash_account) == Decimal("1050.00")
        assert ledger.verify_account_ledger(cash_account.id)["ok"]

    def test_update_takes_due_collection_back_from_its_account(self, stocked, customer, cash_account,
                                                               bank_account, lines):
        created = sales_service.create_sale(lines((stocked, 4, "12.50")), "50", "30", customer_id=customer.id)
        sale_id = created["memo_id"]
        sales_service.receive_customer_due(sale_id, "20", ByAccountId(bank_account.id))
        assert _balance(bank_account) == Decimal("520.00")

        sales_service.update_sale(sale_id, lines((stocked, 4, "12.50")), "50", "50", ByAccountId(bank_account.id))

        assert _balance(cash_account) == Decimal("1000.00")
        assert _balance(bank_account) == Decimal("550.00")
        entries = _sale_entries(sale_id)
        assert sum(e.signed_amount for e in entries) == sales_service.get_sale(sale_id).paid_amount
        assert ledger.verify_account_ledger(cash_account.id)["ok"]
        assert ledger.verify_account_ledger(bank_account.id)["ok"]


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteSale:
    def test_delete_reverts_everything(self, sale, cash_account, customer, stocked):
        result = sales_service.delete_sale(sale.id)

        assert result["new_balances"] == {cash_account.id: Decimal("1000.00")}
        assert _sale_entries(sale.id) == []
        assert _stock(stocked) == 20

        customer = db.session.get(Customer, customer.id)
        assert customer.total_sales == Decimal("0")
        assert customer.total_due == Decimal("0")
        with pytest.raises(SaleNotFoundError):
            sales_service.get_sale(sale.id)


# =============================================================================
# CUSTOMER PAYMENTS
# =============================================================================


@pytest.fixture
def due_sales(stocked, customer, lines):
    """Two memos for the customer: due 20 then due 30."""
    first = sales_service.create_sale(lines((stocked, 4, "12.50")), "50", "30", customer_id=customer.id)
    second = sales_service.create_sale(lines((stocked, 4, "12.50")), "50", "20", customer_id=customer.id)
    return first["sale"], second["sale"]


class TestCustomerPayments:
    def test_receive_due_on_one_memo(self, due_sales, cash_account, customer):
        first, _ = due_sales
        result = sales_service.receive_customer_due(first.id, "15")

        sale = result["sale"]
        assert (sale.paid_amount, sale.due) == (Decimal("45.00"), Decimal("5.00"))
        [payment] = sale.payments
        assert payment.due_after_payment == Decimal("5.00")
        assert _sale_entries(first.id)[-1].entry_source == "customer_due_payment"
        assert result["new_balance"] == Decimal("1065.00")
        assert db.session.get(Customer, customer.id).total_due == Decimal("35.00")

    def test_receive_more_than_due_rejected(self, due_sales):
        first, _ = due_sales
        with pytest.raises(ExceedsDueError):
            sales_service.receive_customer_due(first.id, "20.01")

    def test_lump_sum_settles_oldest_first_then_advance(self, due_sales, cash_account, customer):
        first, second = due_sales
        result = sales_service.receive_customer_payment(customer.id, "60")

        assert result["applied"] == [
            {"sale_id": first.id, "amount": Decimal("20.00")},
            {"sale_id": second.id, "amount": Decimal("30.00")},
        ]
        assert result["advance"] == Decimal("10.00")
        assert result["new_balance"] == Decimal("1110.00")

        customer = db.session.get(Customer, customer.id)
        assert customer.total_due == Decimal("0")
        assert customer.advance == Decimal("10.00")
        assert customer.history[-1].type == "advance_payment"
        assert sales_service.list_sales(due_only=True) == []
        assert ledger.verify_account_ledger(cash_account.id)["ok"]

    def test_partial_lump_sum_stops_at_remaining(self, due_sales, customer):
        first, second = due_sales
        result = sales_service.receive_customer_payment(customer.id, "25")

        assert result["applied"] == [
            {"sale_id": first.id, "amount": Decimal("20.00")},
            {"sale_id": second.id, "amount": Decimal("5.00")},
        ]
        assert result["advance"] == Decimal("0")
        assert sales_service.get_sale(second.id).due == Decimal("25.00")
