# payments/services/ledger.py

"""
LEDGER RECONSTRUCTOR (READ-ONLY)

Merges a counterparty's invoices and payments into one timeline with a
running balance:

    invoice  -> +total_amount
    payment  -> -amount

Positive running balance means the customer owes us (sale) or we owe the
supplier (purchase). Ordering is (created_at, invoice before payment, id),
so repeated calls over the same rows give the same output.

The final running balance equals outstanding_balance() for the same scope,
because paid_amount only moves together with a Payment row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.db import DatabaseError

from invoices.models import Invoice
from payments.exceptions import LedgerUnavailableError
from payments.models import Payment
from payments.services.invoice_query import (
    get_counterparty,
    require_capability,
    validate_direction,
)
from permissions.roles import CAP_LEDGER_VIEW

logger = logging.getLogger("payments")

TWOPLACES = Decimal("0.01")

KIND_INVOICE = "invoice"
KIND_PAYMENT = "payment"

# invoices sort before payments made at the same instant
_KIND_RANK = {KIND_INVOICE: 0, KIND_PAYMENT: 1}


def _money(v) -> Decimal:
    return Decimal(str(v or "0.00")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LedgerEntry:
    entry_id: str
    kind: str
    created_at: datetime
    direction: str
    direction_tag: str
    amount: Decimal
    invoice_id: str
    branch_id: Optional[str]
    invoice_balance: Optional[Decimal]
    note: str
    running_balance: Decimal

    def as_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "kind": self.kind,
            "created_at": self.created_at.isoformat(),
            "direction": self.direction,
            "direction_tag": self.direction_tag,
            "amount": str(self.amount),
            "invoice_id": self.invoice_id,
            "branch_id": self.branch_id,
            "invoice_balance": (
                str(self.invoice_balance) if self.invoice_balance is not None else None
            ),
            "note": self.note,
            "running_balance": str(self.running_balance),
        }


def build_ledger(*, counterparty_id, direction=None, acting_user=None) -> list[LedgerEntry]:
    """
    Chronological invoice + payment history for one counterparty.

    direction=None covers the counterparty's natural side (customer -> sale,
    supplier -> purchase); pass a direction explicitly to read the other side.
    Non-admin callers only see rows of their own branch.
    """
    if acting_user is not None:
        require_capability(acting_user, CAP_LEDGER_VIEW)

    counterparty = get_counterparty(counterparty_id)
    direction = validate_direction(direction or counterparty.natural_direction)
    branch_scoped = acting_user is not None and not acting_user.is_privileged
    if branch_scoped and not acting_user.branch_id:
        return []

    try:
        invoices = Invoice.objects.for_counterparty(counterparty.id, direction)
        payments = Payment.objects.filter(
            counterparty_id=counterparty.id,
            invoice__direction=direction,
        )
        if branch_scoped:
            invoices = invoices.filter(branch_id=acting_user.branch_id)
            payments = payments.filter(branch_id=acting_user.branch_id)

        invoice_rows = list(invoices.order_by("created_at", "id"))
        payment_rows = list(payments.order_by("created_at", "id"))
    except DatabaseError as exc:
        logger.exception(
            "Ledger read failed",
            extra={"counterparty_id": str(counterparty.id), "direction": direction},
        )
        raise LedgerUnavailableError("Ledger is temporarily unavailable") from exc

    raw = []
    for inv in invoice_rows:
        raw.append(
            (
                (inv.created_at, _KIND_RANK[KIND_INVOICE], str(inv.id)),
                {
                    "entry_id": str(inv.id),
                    "kind": KIND_INVOICE,
                    "created_at": inv.created_at,
                    "direction_tag": inv.payment_direction_tag,
                    "amount": _money(inv.total_amount),
                    "invoice_id": str(inv.id),
                    "branch_id": str(inv.branch_id) if inv.branch_id else None,
                    "invoice_balance": _money(inv.balance),
                    "note": inv.notes or "",
                },
            )
        )
    for pay in payment_rows:
        raw.append(
            (
                (pay.created_at, _KIND_RANK[KIND_PAYMENT], str(pay.id)),
                {
                    "entry_id": str(pay.id),
                    "kind": KIND_PAYMENT,
                    "created_at": pay.created_at,
                    "direction_tag": pay.direction_tag,
                    "amount": _money(pay.amount),
                    "invoice_id": str(pay.invoice_id),
                    "branch_id": str(pay.branch_id) if pay.branch_id else None,
                    "invoice_balance": None,
                    "note": pay.note or "",
                },
            )
        )

    raw.sort(key=lambda pair: pair[0])

    entries: list[LedgerEntry] = []
    running = Decimal("0.00")
    for _key, row in raw:
        if row["kind"] == KIND_INVOICE:
            running += row["amount"]
        else:
            running -= row["amount"]
        entries.append(LedgerEntry(direction=direction, running_balance=running, **row))

    return entries


def ledger_summary(entries) -> dict:
    invoiced = sum((e.amount for e in entries if e.kind == KIND_INVOICE), Decimal("0.00"))
    paid = sum((e.amount for e in entries if e.kind == KIND_PAYMENT), Decimal("0.00"))
    closing = entries[-1].running_balance if entries else Decimal("0.00")
    return {
        "total_invoiced": str(invoiced),
        "total_paid": str(paid),
        "closing_balance": str(closing),
        "entry_count": len(entries),
    }
