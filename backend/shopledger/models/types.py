# Overview: Column types that keep money exact in the database.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.types import BigInteger, TypeDecorator

from ..money import FOURPLACES, TWOPLACES, to_money, to_unit_cost


class Money(TypeDecorator):
    """
    Decimal in Python, integer cents in the database.

    Authoritative storage is in cents so that SQL-side increments
    (balance = balance - :amount) are exact integer arithmetic.
    """
    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int((to_money(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return (Decimal(int(value)) / 100).quantize(TWOPLACES)


class UnitCost(TypeDecorator):
    """Decimal with four places, stored as an integer count of 1/10000 units."""
    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int((to_unit_cost(value) * 10000).to_integral_value(rounding=ROUND_HALF_UP))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return (Decimal(int(value)) / 10000).quantize(FOURPLACES)
