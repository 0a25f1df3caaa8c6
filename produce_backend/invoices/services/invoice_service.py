# invoices/services/invoice_service.py

"""
======================================================
PATH: invoices/services/invoice_service.py
======================================================
INVOICE CREATION (ATOMIC)

Header, items and the optional amount paid at the counter are written in ONE
transaction. If any line fails, nothing is left behind.

Rules:
- invoices.create is required; purchase invoices additionally need
  entities.manage_suppliers (supplier dealings are admin-only)
- direction must match the counterparty type (customer -> sale,
  supplier -> purchase)
- non-admin staff always invoice in their own branch
- total_amount is the sum of line totals when items are given
- paid_amount starts at 0; an initial payment goes through the payment
  processor so a Payment row exists for it
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.core.exceptions import ValidationError
from django.db import transaction

from branches.models import Branch
from entities.models import Counterparty
from invoices.models import Invoice, InvoiceItem
from payments.exceptions import PaymentError
from payments.services.processor import record_invoice_payment
from payments.signals import ledger_changed
from permissions.roles import CAP_ENTITIES_MANAGE_SUPPLIERS, CAP_INVOICES_CREATE

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")


def _money(v) -> Decimal:
    return Decimal(str(v or "0.00")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


class InvoiceError(ValueError):
    pass


class InvoicePermissionError(InvoiceError):
    pass


def _parse_money(value, field: str) -> Decimal:
    try:
        amount = _money(value)
    except (InvalidOperation, ValueError) as exc:
        raise InvoiceError(f"{field}: invalid amount {value!r}") from exc
    if amount < Decimal("0.00"):
        raise InvoiceError(f"{field}: cannot be negative")
    return amount


def _resolve_branch(acting_user, branch_id) -> Branch:
    if not acting_user.is_privileged:
        if not acting_user.branch_id:
            raise InvoicePermissionError("No branch assigned to this user")
        if branch_id and not acting_user.can_access_branch(branch_id):
            raise InvoicePermissionError("Staff can only invoice in their own branch")
        branch_id = acting_user.branch_id

    if not branch_id:
        raise InvoiceError("branch_id is required")

    try:
        return Branch.objects.get(id=branch_id, is_active=True)
    except (Branch.DoesNotExist, ValueError, ValidationError) as exc:
        raise InvoiceError("Branch not found") from exc


def _authorize(acting_user, direction: str) -> None:
    if not acting_user.has_capability(CAP_INVOICES_CREATE):
        raise InvoicePermissionError("Not allowed to create invoices")
    if direction == Invoice.DIRECTION_PURCHASE and not acting_user.has_capability(
        CAP_ENTITIES_MANAGE_SUPPLIERS
    ):
        raise InvoicePermissionError("Only admins can record purchase invoices")


@transaction.atomic
def create_invoice(
    *,
    acting_user,
    counterparty_id,
    direction=None,
    branch_id=None,
    items=None,
    total_amount=None,
    paid_amount=None,
    notes: str = "",
    created_at=None,
) -> Invoice:
    """
    items: iterable of dicts with description, quantity, unit_price and an
    optional unit. Without items, total_amount is required.
    """
    try:
        counterparty = Counterparty.objects.get(id=counterparty_id, is_active=True)
    except (Counterparty.DoesNotExist, ValueError, ValidationError) as exc:
        raise InvoiceError("Counterparty not found") from exc

    direction = direction or counterparty.natural_direction
    if direction != counterparty.natural_direction:
        raise InvoiceError(
            f"A {counterparty.entity_type} can only have {counterparty.natural_direction} invoices"
        )

    _authorize(acting_user, direction)
    branch = _resolve_branch(acting_user, branch_id)

    lines = list(items or [])
    if lines:
        total = Decimal("0.00")
        for line in lines:
            try:
                total += _money(Decimal(str(line["quantity"])) * Decimal(str(line["unit_price"])))
            except (KeyError, InvalidOperation, ValueError, TypeError) as exc:
                raise InvoiceError(f"Invalid invoice line: {line!r}") from exc
        if total_amount is not None and _parse_money(total_amount, "total_amount") != total:
            raise InvoiceError("total_amount does not match the sum of the items")
    elif total_amount is not None:
        total = _parse_money(total_amount, "total_amount")
    else:
        raise InvoiceError("Provide items or total_amount")

    if total <= Decimal("0.00"):
        raise InvoiceError("Invoice total must be > 0")

    initial_paid = _parse_money(paid_amount, "paid_amount") if paid_amount else Decimal("0.00")
    if initial_paid > total:
        raise InvoiceError("paid_amount cannot exceed the invoice total")

    header = {
        "counterparty": counterparty,
        "direction": direction,
        "branch": branch,
        "total_amount": total,
        "notes": notes or "",
        "created_by_id": acting_user.id,
    }
    if created_at is not None:
        header["created_at"] = created_at

    try:
        invoice = Invoice.objects.create(**header)
        for line in lines:
            InvoiceItem.objects.create(
                invoice=invoice,
                description=line.get("description", ""),
                unit=line.get("unit") or InvoiceItem.UNIT_KG,
                quantity=line["quantity"],
                unit_price=line["unit_price"],
            )
    except ValidationError as exc:
        raise InvoiceError("; ".join(exc.messages)) from exc

    logger.info(
        "Invoice created",
        extra={
            "invoice_id": str(invoice.id),
            "counterparty_id": str(counterparty.id),
            "direction": direction,
            "branch_id": str(branch.id),
            "total_amount": str(total),
        },
    )

    if initial_paid > Decimal("0.00"):
        try:
            record_invoice_payment(
                invoice_id=invoice.id,
                amount=initial_paid,
                acting_user=acting_user,
                note="Paid at invoice creation",
                capability=CAP_INVOICES_CREATE,
            )
        except PaymentError as exc:
            raise InvoiceError(f"Initial payment failed: {exc}") from exc
        invoice.refresh_from_db()
    else:
        transaction.on_commit(
            lambda: ledger_changed.send(
                sender=Invoice,
                counterparty_id=counterparty.id,
                direction=direction,
            )
        )

    return invoice
