# Overview: Error taxonomy shared by services and routes.

"""
Ledger error taxonomy.

Every error carries an HTTP-equivalent status code, a human-readable message,
and a context dict (entity id, attempted amount, ...) so a caller can retry or
report the problem.

- ValidationError    400  malformed input, raised before any side effect
- NotFoundError      404  an id does not resolve
- BusinessRuleError  400  stock, balance or due rules
- StorageError       500  write failure; mid-workflow it triggers compensation
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base for every error a ledger operation reports to its caller."""

    status_code = 500

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.message}
        if self.context:
            body["context"] = {k: _jsonable(v) for k, v in self.context.items()}
        return body


def _jsonable(value):
    # Decimals and other scalars are rendered as plain JSON values
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return str(value)


# =============================================================================
# 400: VALIDATION
# =============================================================================

class ValidationError(LedgerError, ValueError):
    """400-level input problem."""

    status_code = 400


class InvalidAmountError(ValidationError):
    pass


class InvalidQuantityError(ValidationError):
    pass


class InvalidProductError(ValidationError):
    pass


# =============================================================================
# 404: NOT FOUND
# =============================================================================

class NotFoundError(LedgerError):
    status_code = 404


class AccountNotFoundError(NotFoundError):
    pass


class TransactionNotFoundError(NotFoundError):
    pass


class InventoryItemNotFoundError(NotFoundError):
    pass


class PurchaseNotFoundError(NotFoundError):
    pass


class SaleNotFoundError(NotFoundError):
    pass


class SupplierNotFoundError(NotFoundError):
    pass


class CustomerNotFoundError(NotFoundError):
    pass


class ProductNotFoundError(NotFoundError):
    pass


# =============================================================================
# 400: BUSINESS RULES
# =============================================================================

class BusinessRuleError(LedgerError):
    status_code = 400


class InsufficientBalanceError(BusinessRuleError):
    pass


class InsufficientStockError(BusinessRuleError):
    pass


class ExceedsDueError(BusinessRuleError):
    pass


class AmbiguousAccountError(BusinessRuleError):
    pass


class AccountInUseError(BusinessRuleError):
    pass


# =============================================================================
# 500: STORAGE
# =============================================================================

class StorageError(LedgerError):
    status_code = 500


class TransactionLogError(StorageError):
    """The balance write succeeded but appending the ledger entry failed."""
