from decimal import Decimal

import pytest

from shopledger.errors import (
    InsufficientStockError,
    InvalidProductError,
    InvalidQuantityError,
    InventoryItemNotFoundError,
    ValidationError,
)
from shopledger.services import inventory_service


class TestReceiveStock:
    def test_first_receive_creates_item(self, product):
        item = inventory_service.receive_stock(product.id, 10, "5.00", 1)

        assert item.stock_qty == 10
        assert item.item_name == "Rice 5kg"
        assert item.average_purchase_price == Decimal("5.0000")
        assert item.last_purchase_price == Decimal("5.0000")
        assert item.sale_price == Decimal("12.50")
        assert len(item.purchase_history) == 1

    def test_weighted_average_over_history(self, product):
        inventory_service.receive_stock(product.id, 10, "5.00", 1)
        item = inventory_service.receive_stock(product.id, 30, "7.00", 2)

        assert item.stock_qty == 40
        assert item.average_purchase_price == Decimal("6.5000")
        assert item.last_purchase_price == Decimal("7.0000")

    def test_average_rounds_half_up_to_four_places(self, product):
        inventory_service.receive_stock(product.id, 3, "1.00", 1)
        item = inventory_service.receive_stock(product.id, 3, "1.00001", 2)
        assert item.average_purchase_price == Decimal("1.0000")

        item = inventory_service.receive_stock(product.id, 1, "2", 3)
        # (3 + 3 + 2) / 7
        assert item.average_purchase_price == Decimal("1.1429")

    @pytest.mark.parametrize("qty", [0, -1, 1.5, "x", True])
    def test_rejects_bad_quantity(self, product, qty):
        with pytest.raises(InvalidQuantityError):
            inventory_service.receive_stock(product.id, qty, "5.00", 1)

    def test_rejects_unknown_product(self, db_session):
        with pytest.raises(InvalidProductError):
            inventory_service.receive_stock(9999, 1, "5.00", 1)


class TestIssueStock:
    def test_issue_reduces_stock_and_appends_history(self, product):
        inventory_service.receive_stock(product.id, 10, "5.00", 1)
        item = inventory_service.issue_stock(product.id, 4, "12.50", 100)

        assert item.stock_qty == 6
        [record] = item.sale_history
        assert (record.memo_id, record.qty, record.subtotal) == (100, 4, Decimal("50.00"))

    def test_issue_more_than_stock_is_refused(self, product):
        inventory_service.receive_stock(product.id, 3, "5.00", 1)

        with pytest.raises(InsufficientStockError) as excinfo:
            inventory_service.issue_stock(product.id, 4, "12.50", 100)

        assert excinfo.value.context["available"] == 3
        item = inventory_service.get_item(product.id)
        assert item.stock_qty == 3
        assert item.sale_history == []

    def test_issue_without_inventory_is_insufficient(self, product):
        with pytest.raises(InsufficientStockError):
            inventory_service.issue_stock(product.id, 1, "12.50", 100)


class TestReversals:
    def test_reverse_receive_recomputes_average_from_remaining(self, product):
        inventory_service.receive_stock(product.id, 10, "5.00", 1)
        inventory_service.receive_stock(product.id, 30, "7.00", 2)

        item = inventory_service.reverse_receive(product.id, 2)

        assert item.stock_qty == 10
        assert item.average_purchase_price == Decimal("5.0000")
        assert item.last_purchase_price == Decimal("5.0000")

    def test_reverse_last_receive_zeroes_costs(self, product):
        inventory_service.receive_stock(product.id, 10, "5.00", 1)
        item = inventory_service.reverse_receive(product.id, 1)

        assert item.stock_qty == 0
        assert item.average_purchase_price == Decimal("0")
        assert item.last_purchase_price == Decimal("0")

    def test_reversal_may_take_stock_negative(self, product):
        inventory_service.receive_stock(product.id, 10, "5.00", 1)
        inventory_service.issue_stock(product.id, 8, "12.50", 100)

        item = inventory_service.reverse_receive(product.id, 1)
        assert item.stock_qty == -8
        assert item.stock_qty == sum(r.qty for r in item.purchase_history) - sum(r.qty for r in item.sale_history)

    def test_reverse_issue_returns_stock(self, product):
        inventory_service.receive_stock(product.id, 10, "5.00", 1)
        inventory_service.issue_stock(product.id, 8, "12.50", 100)

        item = inventory_service.reverse_issue(product.id, 100)
        assert item.stock_qty == 10
        assert item.sale_history == []

    def test_reverse_of_unknown_reference_is_noop(self, product):
        inventory_service.receive_stock(product.id, 10, "5.00", 1)
        item = inventory_service.reverse_receive(product.id, 42)
        assert item.stock_qty == 10

    def test_stock_matches_history_after_mixed_operations(self, product):
        inventory_service.receive_stock(product.id, 10, "5.00", 1)
        inventory_service.receive_stock(product.id, 5, "6.00", 2)
        inventory_service.issue_stock(product.id, 7, "12.50", 100)
        inventory_service.reverse_receive(product.id, 1)
        inventory_service.issue_stock(product.id, 2, "12.50", 101, enforce_stock=False)

        item = inventory_service.get_item(product.id)
        received = sum(r.qty for r in item.purchase_history)
        issued = sum(r.qty for r in item.sale_history)
        assert item.stock_qty == received - issued == -4


class TestItemSettings:
    def test_get_item_unknown_product(self, product):
        with pytest.raises(InventoryItemNotFoundError):
            inventory_service.get_item(product.id)

    def test_update_settings(self, product):
        inventory_service.receive_stock(product.id, 10, "5.00", 1)
        item = inventory_service.update_item_settings(product.id, sale_price="13", reorder_level=2)

        assert item.sale_price == Decimal("13.00")
        assert item.reorder_level == 2
        assert item.stock_qty == 10

    def test_negative_reorder_level_rejected(self, product):
        inventory_service.receive_stock(product.id, 10, "5.00", 1)
        with pytest.raises(ValidationError):
            inventory_service.update_item_settings(product.id, reorder_level=-1)
