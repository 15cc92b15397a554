from decimal import Decimal

import pytest

from shopledger.errors import InvalidAmountError, InvalidProductError, InvalidQuantityError, ValidationError
from shopledger.money import to_money, to_unit_cost
from shopledger.models import Product
from shopledger.services.products_service import PRODUCT_POLICY
from shopledger.validation import parse_line_items, read_amount, read_int, validate_payload


class TestMoney:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (0.1, Decimal("0.10")),
            ("12.345", Decimal("12.35")),
            (None, Decimal("0.00")),
            ("", Decimal("0.00")),
            (7, Decimal("7.00")),
        ],
    )
    def test_to_money(self, raw, expected):
        assert to_money(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity", True])
    def test_to_money_rejects(self, raw):
        with pytest.raises(ValueError):
            to_money(raw)

    def test_unit_cost_keeps_four_places(self):
        assert to_unit_cost("1.23456") == Decimal("1.2346")
        with pytest.raises(ValueError):
            to_unit_cost("Infinity")


class TestReadAmount:
    def test_first_present_key_wins(self):
        assert read_amount({"paidAmount": "5", "advance": "3"}, "advance", "paidAmount") == Decimal("3.00")

    def test_missing_optional_is_zero(self):
        assert read_amount({}, "advance") == Decimal("0.00")

    def test_missing_required(self):
        with pytest.raises(ValidationError) as excinfo:
            read_amount({}, "total", required=True)
        assert excinfo.value.context == {"field": "total"}

    @pytest.mark.parametrize("raw", [-1, "x", True])
    def test_rejects_bad_values(self, raw):
        with pytest.raises(InvalidAmountError):
            read_amount({"amount": raw}, "amount")


class TestReadInt:
    def test_reads_numeric_strings(self):
        assert read_int({"supplierId": "4"}, "supplierId") == 4

    def test_optional_missing_is_none(self):
        assert read_int({}, "supplierId", required=False) is None

    @pytest.mark.parametrize("raw", [1.5, True, "four"])
    def test_rejects_non_integers(self, raw):
        with pytest.raises(ValidationError):
            read_int({"supplierId": raw}, "supplierId")


class TestParseLineItems:
    def test_normalizes_lines(self):
        [line] = parse_line_items(
            [{"productId": "3", "qty": 2.0, "salePrice": "12.5", "name": " Rice "}],
            price_keys=("sale_price", "salePrice"),
        )
        assert line == {
            "product_id": 3,
            "name": "Rice",
            "qty": 2,
            "price": Decimal("12.5000"),
            "subtotal": Decimal("25.00"),
        }

    def test_explicit_subtotal_is_kept(self):
        [line] = parse_line_items(
            [{"product_id": 1, "qty": 3, "price": "10", "subtotal": "27"}], price_keys=("price",),
        )
        assert line["subtotal"] == Decimal("27.00")

    @pytest.mark.parametrize("raw", [None, [], "x", {}])
    def test_requires_non_empty_list(self, raw):
        with pytest.raises(ValidationError):
            parse_line_items(raw, price_keys=("price",))

    def test_missing_product_id(self):
        with pytest.raises(InvalidProductError):
            parse_line_items([{"qty": 1, "price": 1}], price_keys=("price",))

    @pytest.mark.parametrize("qty", [0, -2, 1.5, None, True])
    def test_bad_quantity(self, qty):
        with pytest.raises(InvalidQuantityError):
            parse_line_items([{"product_id": 1, "qty": qty, "price": 1}], price_keys=("price",))

    def test_missing_price(self):
        with pytest.raises(InvalidAmountError):
            parse_line_items([{"product_id": 1, "qty": 1}], price_keys=("price",))


class TestValidatePayload:
    def test_coerces_by_column_type(self):
        patch = validate_payload(
            model=Product,
            payload={"name": "  Rice 5kg ", "sale_price": "12.5", "is_active": 1},
            policy=PRODUCT_POLICY,
            partial=False,
        )
        assert patch == {"name": "Rice 5kg", "sale_price": Decimal("12.50"), "is_active": True}

    def test_missing_required_on_create(self):
        with pytest.raises(ValidationError):
            validate_payload(model=Product, payload={"sku": "R-1"}, policy=PRODUCT_POLICY, partial=False)

    def test_patch_skips_required_check(self):
        assert validate_payload(model=Product, payload={"sku": "R-1"}, policy=PRODUCT_POLICY, partial=True) == {
            "sku": "R-1",
        }

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "Rice", "id": 4},
            {"name": "Rice", "sale_price": -1},
            {"name": "Rice", "sale_price": True},
            {"name": "   "},
            {"name": None},
        ],
    )
    def test_rejects(self, payload):
        with pytest.raises(ValidationError) as excinfo:
            validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        assert excinfo.value.status_code == 400
