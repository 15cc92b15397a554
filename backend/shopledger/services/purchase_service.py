# Overview: Purchase workflow; supplier invoices across inventory, ledger and supplier totals.

"""
Purchase workflow.

Lifecycle per purchase id: Created -> [Updated]* -> Deleted.

Every operation runs inside workflow_scope(); each mutating step records the
inverse it would need if a later step failed (see compensation.py). The
order of steps below is the order of effects:

create:  insert purchase -> debit account (invoice) -> receive each line
         -> supplier totals + history
update:  reverse old receives -> move payment between/within accounts
         -> revert old supplier totals -> re-receive new lines
         -> apply new supplier totals + history -> overwrite purchase
pay due: debit account (supplier_due_payment) -> supplier due + history
         -> purchase paid/due
delete:  reverse receives -> revert supplier totals -> delete ledger
         entries (recompute accounts) -> delete purchase

All input validation happens before the first write.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import partial

from ..errors import (
    AccountNotFoundError,
    ExceedsDueError,
    InvalidAmountError,
    PurchaseNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Purchase, PurchaseLine, Supplier
from ..models.accounts import ACCOUNT_TYPE_BANK, ACCOUNT_TYPE_CASH, TRANSACTION_DEBIT
from ..money import ZERO, to_money
from ..time_utils import utcnow
from . import account_balance_service as ledger
from . import inventory_service, supplier_service
from .account_balance_service import AccountRef, ByLegacyType, purchase_ref
from .compensation import workflow_scope
from .products_service import resolve_line_products

logger = logging.getLogger(__name__)

ENTRY_INVOICE = "invoice"
ENTRY_INVOICE_UPDATE = "invoice_update"
ENTRY_RETURN_OLD = "invoice_update_return_old"
ENTRY_APPLY_NEW = "invoice_update_apply_new"
ENTRY_SUPPLIER_DUE_PAYMENT = "supplier_due_payment"

# Entries that count as "the invoice's payment" (legacy rows used "purchase")
INVOICE_ENTRY_SOURCES = (ENTRY_INVOICE, "purchase")


def _particulars(prefix: str, lines: list[dict]) -> str:
    return f"{prefix} - " + ", ".join(f"{line['name']} x {line['qty']}" for line in lines)


def _snapshot(lines: list[dict]) -> list[dict]:
    return [
        {
            "product_id": line["product_id"],
            "name": line["name"],
            "qty": line["qty"],
            "purchase_price": float(line["price"]),
            "subtotal": float(line["subtotal"]),
        }
        for line in lines
    ]


def _lines_of(purchase: Purchase) -> list[dict]:
    return [
        {
            "product_id": line.product_id,
            "name": line.name,
            "qty": line.qty,
            "price": line.purchase_price,
            "subtotal": line.subtotal,
        }
        for line in purchase.lines
    ]


def _purchase_lines(lines: list[dict]) -> list[PurchaseLine]:
    return [
        PurchaseLine(
            product_id=line["product_id"],
            name=line["name"],
            qty=line["qty"],
            purchase_price=line["price"],
            subtotal=line["subtotal"],
        )
        for line in lines
    ]


def _check_amounts(total, paid) -> tuple[Decimal, Decimal]:
    try:
        total = to_money(total)
        paid = to_money(paid)
    except ValueError:
        raise InvalidAmountError("Amounts must be numbers")
    if total <= ZERO:
        raise InvalidAmountError("Total amount must be greater than zero", total_amount=total)
    if paid < ZERO:
        raise InvalidAmountError("Paid amount cannot be negative", paid_amount=paid)
    if paid > total:
        raise ValidationError("Paid amount cannot exceed total amount", total_amount=total, paid_amount=paid)
    return total, paid


def _payment_account(account_ref: AccountRef | None, paid: Decimal):
    account = ledger.resolve_account(account_ref)
    if paid > ZERO and account is None:
        raise AccountNotFoundError("Payment account not found", account_ref=repr(account_ref))
    return account


def _legacy_type(account_ref: AccountRef | None) -> str | None:
    return account_ref.payment_type if isinstance(account_ref, ByLegacyType) else None


def _receive_lines(lines: list[dict], purchase_id: int, at) -> None:
    for line in lines:
        inventory_service.receive_stock(
            line["product_id"], line["qty"], line["price"], purchase_id,
            name=line["name"], subtotal=line["subtotal"], at=at, commit=False,
        )


def _unique_product_ids(lines: list[dict]) -> list[int]:
    return list(dict.fromkeys(line["product_id"] for line in lines))


def _delete_purchase_row(purchase_id: int) -> None:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is not None:
        db.session.delete(purchase)


def _revert_supplier(supplier_id: int, total: Decimal, due: Decimal, history_id: int | None) -> None:
    supplier_service.adjust_totals(supplier_id, purchase_delta=-total, due_delta=-due)
    if history_id is not None:
        supplier_service.remove_history(history_id)


def _apply_supplier(supplier: Supplier, entry_type: str, purchase_id: int, lines: list[dict],
                    total: Decimal, paid: Decimal, at) -> int:
    """Add a purchase's totals to its supplier; returns the history entry id."""
    due = total - paid
    previous_due = supplier.total_due
    supplier_service.adjust_totals(supplier.id, purchase_delta=total, due_delta=due)
    supplier.last_purchase_date = at
    supplier_service.add_supplied_products(supplier, [line["name"] for line in lines])
    entry = supplier_service.add_history(
        supplier,
        entry_type,
        date=at,
        purchase_id=purchase_id,
        products=_snapshot(lines),
        total_amount=total,
        paid_amount=paid,
        previous_due=previous_due,
        due_after_payment=previous_due + due,
    )
    db.session.flush()
    return entry.id


def _new_balances(*accounts) -> dict[int, Decimal]:
    """Current balance of every touched account plus the cash/bank defaults."""
    candidates = list(accounts) + [
        ledger.get_default_account(ACCOUNT_TYPE_CASH),
        ledger.get_default_account(ACCOUNT_TYPE_BANK),
    ]
    balances = {}
    for account in candidates:
        if account is not None and account.id not in balances:
            db.session.refresh(account)
            balances[account.id] = account.balance
    return balances


# =============================================================================
# READS
# =============================================================================

def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if not purchase:
        raise PurchaseNotFoundError("Purchase not found", purchase_id=purchase_id)
    return purchase


def list_purchases(due_only: bool = False, supplier_id: int | None = None) -> list[Purchase]:
    query = Purchase.query
    if due_only:
        query = query.filter(Purchase.payment_due > 0)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    return query.order_by(Purchase.date.desc(), Purchase.id.desc()).all()


# =============================================================================
# CREATE
# =============================================================================

def create_purchase(
    lines: list[dict],
    total_amount,
    paid_amount,
    account_ref: AccountRef | None,
    supplier_id: int | None = None,
    *,
    date=None,
    created_by: str | None = None,
) -> dict:
    """
    Record a supplier invoice.

    Returns {"purchase", "new_balance", "new_balances"}; new_balance is the
    paying account's balance (None when nothing was paid).
    """
    total, paid = _check_amounts(total_amount, paid_amount)
    resolve_line_products(lines)
    supplier = supplier_service.get_supplier(supplier_id) if supplier_id else None
    account = _payment_account(account_ref, paid)
    at = date or utcnow()

    with workflow_scope("purchase.create") as scope:
        purchase = Purchase(
            supplier_id=supplier.id if supplier else None,
            total_amount=total,
            paid_amount=paid,
            payment_due=total - paid,
            payment_account_id=account.id if account else None,
            payment_type=_legacy_type(account_ref),
            date=at,
            last_payment_date=at if paid > ZERO else None,
            created_by=created_by,
        )
        purchase.lines = _purchase_lines(lines)
        db.session.add(purchase)
        db.session.flush()
        purchase_id = purchase.id
        ref = purchase_ref(purchase_id)
        scope.step("insert purchase", undo=partial(_delete_purchase_row, purchase_id))

        if paid > ZERO:
            result = ledger.apply_transaction(
                account.id, paid, TRANSACTION_DEBIT, ENTRY_INVOICE, ref,
                {
                    "particulars": _particulars("Purchase", lines),
                    "products": _snapshot(lines),
                    "payment_details": {"purchase_id": purchase_id},
                    "created_by": created_by,
                },
                commit=False,
            )
            scope.step(
                f"debit {paid} from account {account.id}",
                undo=partial(ledger.delete_transaction, result["transaction_id"], commit=False),
            )

        for line in lines:
            _receive_lines([line], purchase_id, at)
            scope.step(
                f"receive product {line['product_id']}",
                undo=partial(inventory_service.reverse_receive, line["product_id"], purchase_id, commit=False),
            )

        if supplier:
            history_id = _apply_supplier(supplier, supplier_service.HISTORY_PURCHASE, purchase_id, lines, total, paid, at)
            scope.step(
                f"supplier {supplier.id} totals",
                undo=partial(_revert_supplier, supplier.id, total, total - paid, history_id),
            )

    logger.info("Created purchase %s total=%s paid=%s supplier=%s", purchase_id, total, paid, supplier_id)

    balances = _new_balances(*(a for a in (account,) if a))
    return {
        "purchase": get_purchase(purchase_id),
        "new_balance": balances.get(account.id) if account else None,
        "new_balances": balances,
    }


# =============================================================================
# UPDATE
# =============================================================================


def _move_payment(scope, purchase_id: int, lines: list[dict], new_account, new_paid: Decimal,
                  created_by: str | None) -> None:
    """
    Re-point an edited invoice's payment.

    What each account actually paid is read from the purchase's own ledger
    entries (invoice, due payments, earlier edits). Accounts other than the
    new one get their share credited back (invoice_update_return_old). The
    new account is then moved to the new paid amount: invoice_update when it
    was the only paying account, invoice_update_apply_new otherwise. When
    the invoice never had a payment entry, the new payment becomes its
    invoice entry.
    """
    ref = purchase_ref(purchase_id)
    details = {
        "particulars": _particulars("Purchase updated", lines),
        "products": _snapshot(lines),
        "payment_details": {"purchase_id": purchase_id},
        "created_by": created_by,
    }

    def record(result, description):
        if result["transaction_id"] is not None:
            scope.step(description, undo=partial(ledger.delete_transaction, result["transaction_id"], commit=False))

    # debits are negative in the net, so paid = -net
    paid_by_account = {account_id: -net for account_id, net in ledger.reference_net_by_account(ref).items()}
    new_account_id = new_account.id if new_account else None
    others = {account_id: amount for account_id, amount in paid_by_account.items() if account_id != new_account_id}

    for account_id, amount in others.items():
        result = ledger.adjust_by_delta(account_id, -amount, ENTRY_RETURN_OLD, ref, details, commit=False)
        record(result, f"return {amount} to account {account_id}")

    if new_account is None:
        return

    delta = new_paid - paid_by_account.get(new_account_id, ZERO)
    if delta == ZERO:
        return

    if not paid_by_account and ledger.find_reference_transaction(ref, INVOICE_ENTRY_SOURCES) is None:
        result = ledger.upsert_reference_transaction(
            ref, INVOICE_ENTRY_SOURCES, new_account_id, TRANSACTION_DEBIT, new_paid,
            entry_source=ENTRY_INVOICE, details=details, commit=False,
        )
    elif new_account_id in paid_by_account and not others:
        result = ledger.adjust_by_delta(new_account_id, delta, ENTRY_INVOICE_UPDATE, ref, details, commit=False)
    else:
        result = ledger.adjust_by_delta(new_account_id, delta, ENTRY_APPLY_NEW, ref, details, commit=False)
    record(result, f"move account {new_account_id} to {new_paid} paid")


def update_purchase(
    purchase_id: int,
    lines: list[dict],
    total_amount,
    paid_amount,
    account_ref: AccountRef | None,
    supplier_id: int | None = None,
    *,
    created_by: str | None = None,
) -> Purchase:
    """
    Replace a purchase's lines, amounts, account and supplier.

    The old effects are reversed and the new ones applied inside one
    workflow scope: atomic mode makes the whole edit all-or-nothing, and in
    compensating mode every applied reversal has its own undo.
    """
    purchase = get_purchase(purchase_id)
    total, paid = _check_amounts(total_amount, paid_amount)
    resolve_line_products(lines)
    new_supplier = supplier_service.get_supplier(supplier_id) if supplier_id else None
    new_account = _payment_account(account_ref, paid)

    old_lines = _lines_of(purchase)
    old_total = purchase.total_amount
    old_paid = purchase.paid_amount
    old_due = purchase.payment_due
    old_supplier_id = purchase.supplier_id
    at = purchase.date

    with workflow_scope("purchase.update") as scope:
        # 1) old inventory out (full average recompute, no stock check)
        for product_id in _unique_product_ids(old_lines):
            inventory_service.reverse_receive(product_id, purchase_id, commit=False)
            product_lines = [line for line in old_lines if line["product_id"] == product_id]
            scope.step(
                f"reverse receive of product {product_id}",
                undo=partial(_receive_lines, product_lines, purchase_id, at),
            )

        # 2) payment
        _move_payment(scope, purchase_id, lines, new_account, paid, created_by)

        # 3) old supplier totals out
        if old_supplier_id:
            supplier_service.adjust_totals(old_supplier_id, purchase_delta=-old_total, due_delta=-old_due)
            scope.step(
                f"revert supplier {old_supplier_id} totals",
                undo=partial(supplier_service.adjust_totals, old_supplier_id, purchase_delta=old_total, due_delta=old_due),
            )

        # 4) new inventory in
        for line in lines:
            _receive_lines([line], purchase_id, at)
            scope.step(
                f"receive product {line['product_id']}",
                undo=partial(inventory_service.reverse_receive, line["product_id"], purchase_id, commit=False),
            )

        # 3b) new supplier totals in
        if new_supplier:
            history_id = _apply_supplier(
                new_supplier, supplier_service.HISTORY_UPDATED_PURCHASE, purchase_id, lines, total, paid, at,
            )
            scope.step(
                f"supplier {new_supplier.id} totals",
                undo=partial(_revert_supplier, new_supplier.id, total, total - paid, history_id),
            )

        # 5) overwrite the document
        purchase = get_purchase(purchase_id)
        purchase.lines = _purchase_lines(lines)
        purchase.supplier_id = new_supplier.id if new_supplier else None
        purchase.total_amount = total
        purchase.paid_amount = paid
        purchase.payment_due = total - paid
        purchase.payment_account_id = new_account.id if new_account else None
        purchase.payment_type = _legacy_type(account_ref)
        if paid != old_paid:
            purchase.last_payment_date = utcnow()
        scope.step("overwrite purchase")

    logger.info("Updated purchase %s total=%s paid=%s", purchase_id, total, paid)
    return get_purchase(purchase_id)


# =============================================================================
# SUPPLIER DUE PAYMENT
# =============================================================================

def pay_supplier_due(
    purchase_id: int,
    pay_amount,
    account_ref: AccountRef | None,
    *,
    created_by: str | None = None,
) -> dict:
    """
    Pay down a purchase's due from an account.

    Raises InvalidAmountError (<= 0), ExceedsDueError (> total - paid),
    AccountNotFoundError, InsufficientBalanceError.
    """
    try:
        amount = to_money(pay_amount)
    except ValueError:
        raise InvalidAmountError("Invalid payment amount", pay_amount=pay_amount)
    if amount <= ZERO:
        raise InvalidAmountError("Invalid payment amount", pay_amount=amount)

    purchase = get_purchase(purchase_id)
    due = purchase.total_amount - purchase.paid_amount
    if amount > due:
        raise ExceedsDueError(
            "Payment exceeds due amount",
            purchase_id=purchase_id,
            pay_amount=amount,
            due_amount=due,
        )

    account = ledger.resolve_account(account_ref)
    if account is None:
        raise AccountNotFoundError("Payment account not found", account_ref=repr(account_ref))

    supplier = db.session.get(Supplier, purchase.supplier_id) if purchase.supplier_id else None
    now = utcnow()

    with workflow_scope("purchase.pay_due") as scope:
        result = ledger.apply_transaction(
            account.id, amount, TRANSACTION_DEBIT, ENTRY_SUPPLIER_DUE_PAYMENT, purchase_ref(purchase_id),
            {
                "particulars": f"Supplier due payment for purchase {purchase_id}",
                "payment_details": {"purchase_id": purchase_id, "supplier_id": purchase.supplier_id},
                "created_by": created_by,
            },
            commit=False,
        )
        scope.step(
            f"debit {amount} from account {account.id}",
            undo=partial(ledger.delete_transaction, result["transaction_id"], commit=False),
        )

        if supplier:
            previous_due = supplier.total_due
            supplier_service.adjust_totals(supplier.id, purchase_delta=ZERO, due_delta=-amount)
            supplier.last_payment_date = now
            entry = supplier_service.add_history(
                supplier,
                supplier_service.HISTORY_DUE_PAYMENT,
                date=now,
                purchase_id=purchase_id,
                paid_amount=amount,
                previous_due=previous_due,
                due_after_payment=previous_due - amount,
                remarks=f"Paid via {account.label}",
            )
            db.session.flush()
            scope.step(
                f"supplier {supplier.id} due",
                undo=partial(_revert_supplier, supplier.id, ZERO, -amount, entry.id),
            )

        purchase = get_purchase(purchase_id)
        purchase.paid_amount = purchase.paid_amount + amount
        purchase.payment_due = purchase.total_amount - purchase.paid_amount
        purchase.last_payment_date = now
        scope.step("update purchase paid amount")

    logger.info("Paid %s on purchase %s from account %s", amount, purchase_id, account.id)
    return {"purchase": get_purchase(purchase_id), "new_balance": result["new_balance"]}


# =============================================================================
# DELETE
# =============================================================================

def delete_purchase(purchase_id: int) -> dict:
    """
    Remove a purchase and all of its effects.

    Every account that loses ledger entries is recomputed, so balances are
    exact after the delete. Returns {"purchase_id", "new_balances"}.
    """
    purchase = get_purchase(purchase_id)
    old_lines = _lines_of(purchase)
    total = purchase.total_amount
    due = purchase.payment_due
    supplier_id = purchase.supplier_id
    at = purchase.date
    ref = purchase_ref(purchase_id)

    with workflow_scope("purchase.delete") as scope:
        for product_id in _unique_product_ids(old_lines):
            inventory_service.reverse_receive(product_id, purchase_id, commit=False)
            product_lines = [line for line in old_lines if line["product_id"] == product_id]
            scope.step(
                f"reverse receive of product {product_id}",
                undo=partial(_receive_lines, product_lines, purchase_id, at),
            )

        if supplier_id:
            supplier_service.adjust_totals(supplier_id, purchase_delta=-total, due_delta=-due)
            scope.step(
                f"revert supplier {supplier_id} totals",
                undo=partial(supplier_service.adjust_totals, supplier_id, purchase_delta=total, due_delta=due),
            )

        snapshots = ledger.snapshot_reference_transactions(ref)
        balances = ledger.delete_reference_transactions(ref, commit=False)
        scope.step(
            f"delete {len(snapshots)} ledger entries",
            undo=partial(ledger.restore_transactions, snapshots, commit=False),
        )

        _delete_purchase_row(purchase_id)
        scope.step("delete purchase")

    logger.info("Deleted purchase %s", purchase_id)
    return {"purchase_id": purchase_id, "new_balances": balances}
