# payments/allocation.py

"""
FIFO PAYMENT ALLOCATION ENGINE (PURE)

Given unpaid invoices (oldest first) and a payment amount, decide how much of
the payment goes to each invoice.

DESIGN PRINCIPLES:
- No database access, no side effects, no hidden state
- Decimal money quantized to 0.01 (exact comparisons, no epsilon)
- All-or-nothing: an invalid request never yields a partial plan

Input invoices are any objects exposing `id`, `created_at` and `balance`
(model instances or plain snapshots); `branch_id` is carried through when present.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional, Sequence

from payments.exceptions import (
    NothingToPayError,
    OverpaymentError,
    PaymentValidationError,
)

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# largest value a DecimalField(max_digits=14, decimal_places=2) column holds
MAX_AMOUNT = Decimal("999999999999.99")


def to_money(v, *, strict: bool = False) -> Decimal:
    """
    Coerce int/str/Decimal to a 2dp Decimal.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    strict=True rejects sub-cent precision instead of rounding it away.
    """
    if v is None or v == "":
        raise PaymentValidationError("Amount is required")
    if isinstance(v, bool):
        raise PaymentValidationError("Amount must be a number")
    try:
        d = Decimal(str(v))
        if not d.is_finite() or abs(d) > MAX_AMOUNT:
            raise PaymentValidationError(f"Invalid amount: {v!r}")
        rounded = d.quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as exc:
        raise PaymentValidationError(f"Invalid amount: {v!r}") from exc
    if strict and rounded != d:
        raise PaymentValidationError("Amount cannot have more than 2 decimal places")
    return rounded


def validate_payment_amount(amount) -> Decimal:
    amt = to_money(amount, strict=True)
    if amt <= ZERO:
        raise PaymentValidationError("Amount must be > 0")
    return amt


@dataclass(frozen=True)
class Allocation:
    invoice_id: str
    created_at: Optional[datetime]
    original_balance: Decimal
    amount_applied: Decimal
    remaining_balance: Decimal
    branch_id: Optional[str] = None

    @property
    def fully_settled(self) -> bool:
        return self.amount_applied == self.original_balance

    def as_dict(self) -> dict:
        return {
            "invoice_id": self.invoice_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "branch_id": self.branch_id,
            "original_balance": str(self.original_balance),
            "amount_applied": str(self.amount_applied),
            "remaining_balance": str(self.remaining_balance),
            "fully_settled": self.fully_settled,
        }


@dataclass(frozen=True)
class AllocationResult:
    payment_amount: Decimal
    total_outstanding: Decimal
    allocations: tuple[Allocation, ...] = field(default_factory=tuple)

    @property
    def total_allocated(self) -> Decimal:
        return sum((a.amount_applied for a in self.allocations), ZERO)

    @property
    def remaining_payment(self) -> Decimal:
        return self.payment_amount - self.total_allocated

    @property
    def settled_invoice_ids(self) -> list[str]:
        return [a.invoice_id for a in self.allocations if a.fully_settled]

    @property
    def invoice_ids(self) -> list[str]:
        return [a.invoice_id for a in self.allocations]

    def as_dict(self) -> dict:
        return {
            "payment_amount": str(self.payment_amount),
            "total_outstanding": str(self.total_outstanding),
            "total_allocated": str(self.total_allocated),
            "remaining_payment": str(self.remaining_payment),
            "settled_invoice_ids": self.settled_invoice_ids,
            "allocations": [a.as_dict() for a in self.allocations],
        }


@dataclass(frozen=True)
class _Snapshot:
    invoice_id: str
    created_at: Optional[datetime]
    balance: Decimal
    branch_id: Optional[str]


def _snapshot(invoices: Iterable) -> list[_Snapshot]:
    out = []
    for inv in invoices:
        branch_id = getattr(inv, "branch_id", None)
        out.append(
            _Snapshot(
                invoice_id=str(inv.id),
                created_at=getattr(inv, "created_at", None),
                balance=to_money(inv.balance),
                branch_id=str(branch_id) if branch_id else None,
            )
        )
    return out


def _check_order(snapshots: Sequence[_Snapshot]) -> None:
    previous = None
    for snap in snapshots:
        if snap.balance <= ZERO:
            raise PaymentValidationError(
                f"Invoice {snap.invoice_id} has no outstanding balance"
            )
        if previous is not None and previous.created_at and snap.created_at:
            if snap.created_at < previous.created_at:
                raise PaymentValidationError(
                    "Unpaid invoices must be ordered oldest first"
                )
        previous = snap


def allocate(unpaid_invoices: Iterable, payment_amount) -> AllocationResult:
    """
    Distribute payment_amount across unpaid_invoices, oldest first.

    Raises:
    - PaymentValidationError: amount <= 0, unsorted input, zero-balance invoice
    - NothingToPayError: no unpaid invoices
    - OverpaymentError: amount > total outstanding (nothing allocated)

    Guarantee on success: sum(amount_applied) == payment_amount.
    """
    amount = validate_payment_amount(payment_amount)

    snapshots = _snapshot(unpaid_invoices)
    if not snapshots:
        raise NothingToPayError()

    _check_order(snapshots)

    total_outstanding = sum((s.balance for s in snapshots), ZERO)
    if amount > total_outstanding:
        raise OverpaymentError(amount=amount, total_outstanding=total_outstanding)

    remaining = amount
    allocations: list[Allocation] = []

    for snap in snapshots:
        if remaining <= ZERO:
            break

        applied = min(snap.balance, remaining)
        allocations.append(
            Allocation(
                invoice_id=snap.invoice_id,
                created_at=snap.created_at,
                original_balance=snap.balance,
                amount_applied=applied,
                remaining_balance=snap.balance - applied,
                branch_id=snap.branch_id,
            )
        )
        remaining -= applied

    return AllocationResult(
        payment_amount=amount,
        total_outstanding=total_outstanding,
        allocations=tuple(allocations),
    )


def preview_breakdown(unpaid_invoices: Iterable, payment_amount) -> dict:
    """
    FIFO breakdown row for EVERY unpaid invoice, including ones the payment
    does not reach. Used to render the payment form as the user types, so an
    out-of-range amount is flagged rather than raised.
    """
    snapshots = _snapshot(unpaid_invoices)
    total_outstanding = sum((s.balance for s in snapshots), ZERO)

    try:
        amount = to_money(payment_amount, strict=True)
    except PaymentValidationError:
        amount = ZERO

    remaining = max(amount, ZERO)
    rows = []
    for snap in snapshots:
        applied = min(snap.balance, remaining)
        remaining -= applied
        rows.append(
            {
                "invoice_id": snap.invoice_id,
                "created_at": snap.created_at.isoformat() if snap.created_at else None,
                "original_balance": str(snap.balance),
                "amount_applied": str(applied),
                "remaining_balance": str(snap.balance - applied),
                "fully_settled": applied == snap.balance,
            }
        )

    return {
        "payment_amount": str(amount),
        "total_outstanding": str(total_outstanding),
        "is_valid_amount": ZERO < amount <= total_outstanding,
        "rows": rows,
    }
