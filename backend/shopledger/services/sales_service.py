# Overview: Sale workflow; customer memos across inventory, ledger and customer totals.

"""
Sale workflow.

Mirror of purchase_service with roles reversed: stock is issued (with the
sufficiency check) instead of received, received money is credited to the
account, and the audit trail is customer_history.

Amounts on a memo:
- due     = max(total - paid, 0)
- advance = max(paid - total, 0)   overpayment carried on the customer

Sales without an explicit account are paid into the default cash account.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import partial

from ..errors import (
    AccountNotFoundError,
    ExceedsDueError,
    InvalidAmountError,
    SaleNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Account, Customer, Sale, SaleLine, SalePayment
from ..models.accounts import ACCOUNT_TYPE_CASH, TRANSACTION_CREDIT
from ..money import ZERO, to_money
from ..time_utils import utcnow
from . import account_balance_service as ledger
from . import customer_service, inventory_service
from .account_balance_service import AccountRef, sale_ref
from .compensation import workflow_scope
from .products_service import resolve_line_products

logger = logging.getLogger(__name__)

ENTRY_SALE = "sale_memo"
ENTRY_SALE_UPDATE = "sale_update"
ENTRY_RETURN_OLD = "sale_update_return_old"
ENTRY_APPLY_NEW = "sale_update_apply_new"
ENTRY_CUSTOMER_DUE_PAYMENT = "customer_due_payment"
ENTRY_CUSTOMER_ADVANCE = "customer_advance_payment"

SALE_ENTRY_SOURCES = (ENTRY_SALE, "sale")


def _split(total: Decimal, paid: Decimal) -> tuple[Decimal, Decimal]:
    """(due, advance) for a memo."""
    return max(total - paid, ZERO), max(paid - total, ZERO)


def _check_amounts(total, paid) -> tuple[Decimal, Decimal]:
    try:
        total = to_money(total)
        paid = to_money(paid)
    except ValueError:
        raise InvalidAmountError("Amounts must be numbers")
    if total <= ZERO:
        raise InvalidAmountError("Total must be greater than zero", total=total)
    if paid < ZERO:
        raise InvalidAmountError("Paid amount cannot be negative", paid_amount=paid)
    return total, paid


def _receiving_account(account_ref: AccountRef | None, fallback_id: int | None = None,
                       required: bool = True) -> Account | None:
    if account_ref is not None:
        account = ledger.resolve_account(account_ref)
    elif fallback_id is not None:
        account = db.session.get(Account, fallback_id)
    else:
        account = ledger.get_default_account(ACCOUNT_TYPE_CASH)
    if account is None and required:
        raise AccountNotFoundError("Receiving account not found", account_ref=repr(account_ref))
    return account


def _snapshot(lines: list[dict]) -> list[dict]:
    return [
        {
            "product_id": line["product_id"],
            "name": line["name"],
            "qty": line["qty"],
            "sale_price": float(line["price"]),
            "subtotal": float(line["subtotal"]),
        }
        for line in lines
    ]


def _lines_of(sale: Sale) -> list[dict]:
    return [
        {
            "product_id": line.product_id,
            "name": line.name,
            "qty": line.qty,
            "price": line.sale_price,
            "subtotal": line.subtotal,
        }
        for line in sale.lines
    ]


def _sale_lines(lines: list[dict]) -> list[SaleLine]:
    return [
        SaleLine(
            product_id=line["product_id"],
            name=line["name"],
            qty=line["qty"],
            sale_price=line["price"],
            subtotal=line["subtotal"],
        )
        for line in lines
    ]


def _issue_lines(lines: list[dict], sale_id: int, at, enforce_stock: bool = True) -> None:
    for line in lines:
        inventory_service.issue_stock(
            line["product_id"], line["qty"], line["price"], sale_id,
            subtotal=line["subtotal"], enforce_stock=enforce_stock, at=at, commit=False,
        )


def _unique_product_ids(lines: list[dict]) -> list[int]:
    return list(dict.fromkeys(line["product_id"] for line in lines))


def _delete_row(model, row_id: int) -> None:
    row = db.session.get(model, row_id)
    if row is not None:
        db.session.delete(row)


def _particulars(prefix: str, lines: list[dict]) -> str:
    return f"{prefix} - " + ", ".join(f"{line['name']} x {line['qty']}" for line in lines)


def _apply_customer(customer: Customer, entry_type: str, sale_id: int, lines: list[dict],
                    total: Decimal, paid: Decimal, at) -> int:
    due, advance = _split(total, paid)
    previous_due = customer.total_due
    customer_service.adjust_totals(customer.id, sales_delta=total, due_delta=due, advance_delta=advance)
    customer.last_sale_date = at
    customer_service.add_purchased_products(customer, [line["name"] for line in lines])
    entry = customer_service.add_history(
        customer,
        entry_type,
        date=at,
        sale_id=sale_id,
        products=_snapshot(lines),
        total_amount=total,
        paid_amount=paid,
        previous_due=previous_due,
        due_after_payment=previous_due + due,
    )
    db.session.flush()
    return entry.id


def _revert_customer(customer_id: int, total: Decimal, due: Decimal, advance: Decimal,
                     history_id: int | None = None) -> None:
    customer_service.adjust_totals(customer_id, sales_delta=-total, due_delta=-due, advance_delta=-advance)
    if history_id is not None:
        customer_service.remove_history(history_id)


def _restore_customer(customer_id: int, total: Decimal, due: Decimal, advance: Decimal) -> None:
    customer_service.adjust_totals(customer_id, sales_delta=total, due_delta=due, advance_delta=advance)


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise SaleNotFoundError("Sale not found", sale_id=sale_id)
    return sale


def list_sales(customer_id: int | None = None, due_only: bool = False) -> list[Sale]:
    query = Sale.query
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if due_only:
        query = query.filter(Sale.due > 0)
    return query.order_by(Sale.date.desc(), Sale.id.desc()).all()


# =============================================================================
# CREATE
# =============================================================================

def create_sale(
    lines: list[dict],
    total,
    paid_amount,
    account_ref: AccountRef | None = None,
    *,
    memo_no: str | None = None,
    date=None,
    customer_id: int | None = None,
    customer_name: str | None = None,
    created_by: str | None = None,
) -> dict:
    """
    Record a sale memo.

    Steps: (customer by name) -> insert sale -> credit account (sale_memo)
    -> issue each line with the stock check -> customer aggregates.
    A failed issue restores the stock already issued for this memo.

    Returns {"sale", "memo_id", "new_balance"}.
    """
    total, paid = _check_amounts(total, paid_amount)
    due, advance = _split(total, paid)
    resolve_line_products(lines)

    customer = customer_service.get_customer(customer_id) if customer_id else None
    if customer is None and not (customer_name or "").strip() and due > ZERO:
        raise ValidationError("A customer is required for a sale with a due amount")
    account = _receiving_account(account_ref, required=paid > ZERO)
    at = date or utcnow()

    with workflow_scope("sale.create") as scope:
        if customer is None and customer_name:
            customer, created = customer_service.find_or_create_by_name(customer_name)
            if created:
                scope.step(f"create customer {customer.id}", undo=partial(_delete_row, Customer, customer.id))

        sale = Sale(
            memo_no=memo_no,
            date=at,
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else customer_name,
            total=total,
            paid_amount=paid,
            due=due,
            advance=advance,
            account_id=account.id if account else None,
            payment_method=(account.method or account.type) if account else None,
            last_payment_date=at if paid > ZERO else None,
            created_by=created_by,
        )
        sale.lines = _sale_lines(lines)
        db.session.add(sale)
        db.session.flush()
        sale_id = sale.id
        scope.step("insert sale", undo=partial(_delete_row, Sale, sale_id))

        new_balance = None
        if paid > ZERO:
            result = ledger.apply_transaction(
                account.id, paid, TRANSACTION_CREDIT, ENTRY_SALE, sale_ref(sale_id),
                {
                    "particulars": _particulars(f"Sale memo {memo_no or sale_id}", lines),
                    "products": _snapshot(lines),
                    "payment_details": {"memo_no": memo_no, "customer_id": sale.customer_id},
                    "created_by": created_by,
                },
                commit=False,
            )
            new_balance = result["new_balance"]
            scope.step(
                f"credit {paid} to account {account.id}",
                undo=partial(ledger.delete_transaction, result["transaction_id"], commit=False),
            )

        for line in lines:
            _issue_lines([line], sale_id, at)
            scope.step(
                f"issue product {line['product_id']}",
                undo=partial(inventory_service.reverse_issue, line["product_id"], sale_id, commit=False),
            )

        if customer:
            history_id = _apply_customer(customer, customer_service.HISTORY_SALE, sale_id, lines, total, paid, at)
            scope.step(
                f"customer {customer.id} totals",
                undo=partial(_revert_customer, customer.id, total, due, advance, history_id),
            )

    logger.info("Created sale %s (memo %s) total=%s paid=%s", sale_id, memo_no, total, paid)
    return {"sale": get_sale(sale_id), "memo_id": sale_id, "new_balance": new_balance}


# =============================================================================
# UPDATE
# =============================================================================

def _move_receipt(scope, sale_id: int, lines: list[dict], new_account, new_paid: Decimal,
                  created_by: str | None) -> None:
    """
    Re-point an edited memo's received money (credit direction).

    What each account received is read from the memo's own ledger entries,
    so due collections into other accounts are taken back from the account
    that actually got them.
    """
    ref = sale_ref(sale_id)
    details = {
        "particulars": _particulars("Sale updated", lines),
        "products": _snapshot(lines),
        "created_by": created_by,
    }

    def record(result, description):
        if result["transaction_id"] is not None:
            scope.step(description, undo=partial(ledger.delete_transaction, result["transaction_id"], commit=False))

    received_by_account = ledger.reference_net_by_account(ref)
    new_account_id = new_account.id if new_account else None
    others = {account_id: amount for account_id, amount in received_by_account.items() if account_id != new_account_id}

    for account_id, amount in others.items():
        result = ledger.adjust_by_delta(account_id, amount, ENTRY_RETURN_OLD, ref, details, commit=False)
        record(result, f"take back {amount} from account {account_id}")

    if new_account is None:
        return

    delta = new_paid - received_by_account.get(new_account_id, ZERO)
    if delta == ZERO:
        return

    # Receiving more is a credit, i.e. a negative adjustment
    if not received_by_account and ledger.find_reference_transaction(ref, SALE_ENTRY_SOURCES) is None:
        result = ledger.upsert_reference_transaction(
            ref, SALE_ENTRY_SOURCES, new_account_id, TRANSACTION_CREDIT, new_paid,
            entry_source=ENTRY_SALE, details=details, commit=False,
        )
    elif new_account_id in received_by_account and not others:
        result = ledger.adjust_by_delta(new_account_id, -delta, ENTRY_SALE_UPDATE, ref, details, commit=False)
    else:
        result = ledger.adjust_by_delta(new_account_id, -delta, ENTRY_APPLY_NEW, ref, details, commit=False)
    record(result, f"move account {new_account_id} to {new_paid} received")


def update_sale(
    sale_id: int,
    lines: list[dict],
    total,
    paid_amount,
    account_ref: AccountRef | None = None,
    *,
    memo_no: str | None = None,
    created_by: str | None = None,
) -> Sale:
    """
    Replace a memo's lines and amounts.

    Old lines are returned to stock (no check), the received money is moved
    by delta or between accounts, new lines are issued (stock checked), and
    the customer's aggregates are re-derived with an updated_sale entry.
    """
    sale = get_sale(sale_id)
    total, paid = _check_amounts(total, paid_amount)
    resolve_line_products(lines)

    old_lines = _lines_of(sale)
    old_total, old_paid = sale.total, sale.paid_amount
    old_due, old_advance = sale.due, sale.advance
    new_account = _receiving_account(account_ref, fallback_id=sale.account_id, required=paid > ZERO)
    customer = db.session.get(Customer, sale.customer_id) if sale.customer_id else None
    due, advance = _split(total, paid)
    if customer is None and due > ZERO:
        raise ValidationError("A customer is required for a sale with a due amount", sale_id=sale_id)
    at = sale.date

    with workflow_scope("sale.update") as scope:
        for product_id in _unique_product_ids(old_lines):
            inventory_service.reverse_issue(product_id, sale_id, commit=False)
            product_lines = [line for line in old_lines if line["product_id"] == product_id]
            scope.step(
                f"return product {product_id} to stock",
                undo=partial(_issue_lines, product_lines, sale_id, at, False),
            )

        _move_receipt(scope, sale_id, lines, new_account, paid, created_by)

        for line in lines:
            _issue_lines([line], sale_id, at)
            scope.step(
                f"issue product {line['product_id']}",
                undo=partial(inventory_service.reverse_issue, line["product_id"], sale_id, commit=False),
            )

        if customer:
            _revert_customer(customer.id, old_total, old_due, old_advance)
            scope.step(
                f"revert customer {customer.id} totals",
                undo=partial(_restore_customer, customer.id, old_total, old_due, old_advance),
            )
            history_id = _apply_customer(
                customer, customer_service.HISTORY_UPDATED_SALE, sale_id, lines, total, paid, at,
            )
            scope.step(
                f"customer {customer.id} totals",
                undo=partial(_revert_customer, customer.id, total, due, advance, history_id),
            )

        sale = get_sale(sale_id)
        sale.lines = _sale_lines(lines)
        sale.total = total
        sale.paid_amount = paid
        sale.due = due
        sale.advance = advance
        if memo_no is not None:
            sale.memo_no = memo_no
        sale.account_id = new_account.id if new_account else None
        sale.payment_method = (new_account.method or new_account.type) if new_account else None
        if paid != old_paid:
            sale.last_payment_date = utcnow()
        scope.step("overwrite sale")

    logger.info("Updated sale %s total=%s paid=%s", sale_id, total, paid)
    return get_sale(sale_id)


# =============================================================================
# DELETE
# =============================================================================

def delete_sale(sale_id: int) -> dict:
    """
    Remove a memo and all of its effects: stock returned, every ledger entry
    of the memo deleted (accounts recomputed), customer aggregates reverted.
    """
    sale = get_sale(sale_id)
    old_lines = _lines_of(sale)
    total, due, advance = sale.total, sale.due, sale.advance
    customer_id = sale.customer_id
    at = sale.date
    ref = sale_ref(sale_id)

    with workflow_scope("sale.delete") as scope:
        for product_id in _unique_product_ids(old_lines):
            inventory_service.reverse_issue(product_id, sale_id, commit=False)
            product_lines = [line for line in old_lines if line["product_id"] == product_id]
            scope.step(
                f"return product {product_id} to stock",
                undo=partial(_issue_lines, product_lines, sale_id, at, False),
            )

        if customer_id:
            _revert_customer(customer_id, total, due, advance)
            scope.step(
                f"revert customer {customer_id} totals",
                undo=partial(_restore_customer, customer_id, total, due, advance),
            )

        snapshots = ledger.snapshot_reference_transactions(ref)
        balances = ledger.delete_reference_transactions(ref, commit=False)
        scope.step(
            f"delete {len(snapshots)} ledger entries",
            undo=partial(ledger.restore_transactions, snapshots, commit=False),
        )

        _delete_row(Sale, sale_id)
        scope.step("delete sale")

    logger.info("Deleted sale %s", sale_id)
    return {"sale_id": sale_id, "new_balances": balances}


# =============================================================================
# CUSTOMER PAYMENTS
# =============================================================================

def _undo_collect(sale_id: int, amount: Decimal, payment_id: int, history_id: int | None) -> None:
    sale = db.session.get(Sale, sale_id)
    if sale is not None:
        sale.paid_amount = sale.paid_amount - amount
        sale.due = sale.due + amount
        _delete_row(SalePayment, payment_id)
        if sale.customer_id:
            customer_service.adjust_totals(sale.customer_id, due_delta=amount)
    if history_id is not None:
        customer_service.remove_history(history_id)


def _collect_due(scope, sale: Sale, amount: Decimal, account: Account, created_by: str | None, now) -> dict:
    """Credit one memo's due payment and record it on sale and customer."""
    sale_id = sale.id
    result = ledger.apply_transaction(
        account.id, amount, TRANSACTION_CREDIT, ENTRY_CUSTOMER_DUE_PAYMENT, sale_ref(sale_id),
        {
            "particulars": f"Due collected for memo {sale.memo_no or sale_id}",
            "payment_details": {"sale_id": sale_id, "customer_id": sale.customer_id},
            "created_by": created_by,
        },
        commit=False,
    )
    scope.step(
        f"credit {amount} to account {account.id}",
        undo=partial(ledger.delete_transaction, result["transaction_id"], commit=False),
    )

    sale = get_sale(sale_id)
    customer = db.session.get(Customer, sale.customer_id) if sale.customer_id else None
    history_id = None
    if customer:
        previous_due = customer.total_due
        customer_service.adjust_totals(customer.id, due_delta=-amount)
        customer.last_payment_date = now
        entry = customer_service.add_history(
            customer,
            customer_service.HISTORY_DUE_PAYMENT,
            date=now,
            sale_id=sale_id,
            paid_amount=amount,
            previous_due=previous_due,
            due_after_payment=previous_due - amount,
            remarks=f"Received via {account.label}",
        )
        db.session.flush()
        history_id = entry.id

    sale.paid_amount = sale.paid_amount + amount
    sale.due = sale.due - amount
    sale.last_payment_date = now
    payment = SalePayment(date=now, amount=amount, account_id=account.id, due_after_payment=sale.due)
    sale.payments.append(payment)
    db.session.flush()
    scope.step(
        f"record payment on sale {sale_id}",
        undo=partial(_undo_collect, sale_id, amount, payment.id, history_id),
    )
    return result


def receive_customer_due(
    sale_id: int,
    pay_amount,
    account_ref: AccountRef | None = None,
    *,
    created_by: str | None = None,
) -> dict:
    """
    Collect part or all of one memo's due.

    Raises InvalidAmountError (<= 0), ExceedsDueError (> due).
    """
    try:
        amount = to_money(pay_amount)
    except ValueError:
        raise InvalidAmountError("Invalid payment amount", pay_amount=pay_amount)
    if amount <= ZERO:
        raise InvalidAmountError("Invalid payment amount", pay_amount=amount)

    sale = get_sale(sale_id)
    if amount > sale.due:
        raise ExceedsDueError("Payment exceeds due amount", sale_id=sale_id, pay_amount=amount, due_amount=sale.due)
    account = _receiving_account(account_ref, fallback_id=sale.account_id)

    with workflow_scope("sale.receive_due") as scope:
        result = _collect_due(scope, sale, amount, account, created_by, utcnow())

    logger.info("Collected %s on sale %s into account %s", amount, sale_id, account.id)
    return {"sale": get_sale(sale_id), "new_balance": result["new_balance"]}


def receive_customer_payment(
    customer_id: int,
    amount,
    account_ref: AccountRef | None = None,
    *,
    created_by: str | None = None,
) -> dict:
    """
    Distribute a lump-sum payment over the customer's due memos, oldest
    first. Whatever is left after every due is cleared is credited as an
    advance (customer_advance_payment) and added to customer.advance.

    Returns {"customer", "applied": [{"sale_id", "amount"}], "advance", "new_balance"}.
    """
    try:
        amount = to_money(amount)
    except ValueError:
        raise InvalidAmountError("Invalid payment amount", amount=amount)
    if amount <= ZERO:
        raise InvalidAmountError("Invalid payment amount", amount=amount)

    customer = customer_service.get_customer(customer_id)
    account = _receiving_account(account_ref)
    due_sales = (
        Sale.query
        .filter(Sale.customer_id == customer.id, Sale.due > 0)
        .order_by(Sale.date.asc(), Sale.id.asc())
        .all()
    )
    now = utcnow()
    applied = []
    remaining = amount
    new_balance = None

    with workflow_scope("customer.payment") as scope:
        for sale in due_sales:
            if remaining <= ZERO:
                break
            portion = min(remaining, sale.due)
            result = _collect_due(scope, sale, portion, account, created_by, now)
            new_balance = result["new_balance"]
            applied.append({"sale_id": sale.id, "amount": portion})
            remaining -= portion

        if remaining > ZERO:
            result = ledger.apply_transaction(
                account.id, remaining, TRANSACTION_CREDIT, ENTRY_CUSTOMER_ADVANCE, None,
                {
                    "particulars": f"Advance from customer {customer.name}",
                    "payment_details": {"customer_id": customer.id},
                    "created_by": created_by,
                },
                commit=False,
            )
            new_balance = result["new_balance"]
            scope.step(
                f"credit advance {remaining} to account {account.id}",
                undo=partial(ledger.delete_transaction, result["transaction_id"], commit=False),
            )
            customer = customer_service.get_customer(customer_id)
            customer_service.adjust_totals(customer.id, advance_delta=remaining)
            customer.last_payment_date = now
            entry = customer_service.add_history(
                customer,
                customer_service.HISTORY_ADVANCE_PAYMENT,
                date=now,
                paid_amount=remaining,
                remarks=f"Advance received via {account.label}",
            )
            db.session.flush()
            scope.step(
                "record customer advance",
                undo=partial(_revert_customer, customer.id, ZERO, ZERO, remaining, entry.id),
            )

    logger.info("Customer %s paid %s: %d memo(s), advance %s", customer_id, amount, len(applied), remaining)
    return {
        "customer": customer_service.get_customer(customer_id),
        "applied": applied,
        "advance": remaining,
        "new_balance": new_balance,
    }
