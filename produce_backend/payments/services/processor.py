# payments/services/processor.py

"""
======================================================
PATH: payments/services/processor.py
======================================================
PAYMENT PROCESSOR (THE ONLY WRITER OF Invoice.paid_amount)

Canonical flow for process_payment():
1) Validate amount + direction          (nothing read yet)
2) Authorize caller                     (no financial data read yet)
3) Re-fetch unpaid invoices, oldest first (never trust a client snapshot)
4) Allocate (pure FIFO engine)          (errors propagate unchanged, zero writes)
5) Open a PaymentRun row                (reconciliation log, survives rollback)
6) For each allocation, oldest first:
   - lock the invoice row, re-read paid_amount
   - refuse if the fresh balance no longer covers the planned amount
   - insert the Payment row (branch inherited from the invoice)
   - paid_amount = current + applied   (balance is never written)
7) Close the run, notify ledger_changed on commit

Transaction policy (settings.PAYMENTS_ATOMIC_ALLOCATION):
- True  (default): step 6 runs inside ONE transaction. Any failure rolls back
  every write -> PaymentWriteError, applied_invoice_ids == [].
- False: each invoice commits on its own. Processing stops at the first
  failure -> PartialWriteError listing applied vs pending invoices
  (PaymentWriteError if nothing was applied). The run can be resumed with
  resume_payment_run(), which re-derives the remainder from persisted rows.

Success is only reported when every allocated invoice was updated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from invoices.models import Invoice
from payments.allocation import Allocation, AllocationResult, allocate, validate_payment_amount
from payments.exceptions import (
    PartialWriteError,
    PaymentValidationError,
    PaymentWriteError,
)
from payments.models import Payment, PaymentRun
from payments.services.invoice_query import (
    get_counterparty,
    require_capability,
    unpaid_invoices_queryset,
    validate_direction,
)
from payments.signals import ledger_changed
from permissions.roles import CAP_PAYMENTS_RECORD

logger = logging.getLogger("payments")

TWOPLACES = Decimal("0.01")

DIRECTION_TAGS = {
    Invoice.DIRECTION_SALE: Payment.TAG_CREDIT,
    Invoice.DIRECTION_PURCHASE: Payment.TAG_DEBIT,
}


def _money(v) -> Decimal:
    return Decimal(str(v or "0.00")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


class StaleAllocationError(PaymentWriteError):
    """The invoice balance shrank between planning and writing (concurrent payment)."""

    code = "stale_allocation"


@dataclass(frozen=True)
class PaymentOutcome:
    run_id: str | None
    amount: Decimal
    payment_ids: list[str] = field(default_factory=list)
    updated_invoice_ids: list[str] = field(default_factory=list)
    allocation: AllocationResult | None = None

    def as_dict(self) -> dict:
        return {
            "success": True,
            "run_id": self.run_id,
            "amount": str(self.amount),
            "payment_ids": list(self.payment_ids),
            "updated_invoice_ids": list(self.updated_invoice_ids),
            "allocation": self.allocation.as_dict() if self.allocation else None,
        }


def _atomic_allocation_enabled() -> bool:
    return bool(getattr(settings, "PAYMENTS_ATOMIC_ALLOCATION", True))


def _default_note(direction: str, invoice_id: str) -> str:
    return f"Payment for {direction} #{invoice_id[:8]}"


def _notify_ledger_changed(*, counterparty_id, direction) -> None:
    transaction.on_commit(
        lambda: ledger_changed.send(
            sender=Payment,
            counterparty_id=counterparty_id,
            direction=direction,
        )
    )


# ------------------------------------------------------------
# Single write primitive
# ------------------------------------------------------------
def _apply_allocation(
    *,
    allocation: Allocation,
    counterparty_id,
    direction: str,
    run: PaymentRun | None,
    acting_user,
    note: str = "",
) -> Payment:
    """
    Payment row + paid_amount increment for ONE invoice, atomically.

    The invoice is locked and re-read here; nothing from the planning read is
    trusted except the amount to apply.
    """
    applied = _money(allocation.amount_applied)

    with transaction.atomic():
        invoice = Invoice.objects.select_for_update().get(id=allocation.invoice_id)

        current_paid = _money(invoice.paid_amount)
        fresh_balance = _money(invoice.total_amount) - current_paid
        if applied > fresh_balance:
            raise StaleAllocationError(
                f"Invoice {invoice.id} balance changed to {fresh_balance} "
                f"(planned {applied}); another payment was recorded concurrently."
            )

        payment = Payment.objects.create(
            counterparty_id=counterparty_id,
            invoice=invoice,
            branch_id=invoice.branch_id,
            amount=applied,
            direction_tag=DIRECTION_TAGS[direction],
            note=note or _default_note(direction, str(invoice.id)),
            run=run,
            created_by_id=getattr(acting_user, "id", None),
        )

        Invoice.objects.filter(pk=invoice.pk).update(
            paid_amount=current_paid + applied,
            updated_at=timezone.now(),
        )

        log_extra = {
            "invoice_id": str(invoice.id),
            "payment_id": str(payment.id),
            "paid_before": str(current_paid),
            "paid_after": str(current_paid + applied),
        }
        # only reported once the outermost transaction commits
        transaction.on_commit(lambda: logger.info("Invoice payment applied", extra=log_extra))

    return payment


# ------------------------------------------------------------
# Run bookkeeping
# ------------------------------------------------------------
def _open_run(*, counterparty_id, direction, amount, acting_user, note, parent) -> PaymentRun:
    return PaymentRun.objects.create(
        counterparty_id=counterparty_id,
        direction=direction,
        amount_requested=amount,
        status=PaymentRun.STATUS_PENDING,
        acting_user_id=str(getattr(acting_user, "id", "") or ""),
        note=note or "",
        parent=parent,
    )


def _close_run(run: PaymentRun, *, status: str, applied_ids, pending_ids, error: str = "") -> None:
    run.status = status
    run.applied_invoice_ids = [str(i) for i in applied_ids]
    run.pending_invoice_ids = [str(i) for i in pending_ids]
    run.error = error
    run.finished_at = timezone.now()
    run.save(
        update_fields=[
            "status",
            "applied_invoice_ids",
            "pending_invoice_ids",
            "error",
            "finished_at",
        ]
    )


def _claim_parent_run(parent: PaymentRun) -> None:
    """Mark the resumed run so it cannot be resumed twice."""
    with transaction.atomic():
        locked = PaymentRun.objects.select_for_update().get(pk=parent.pk)
        if not locked.is_resumable:
            raise PaymentValidationError(
                f"Payment run {locked.id} is {locked.status}; it cannot be resumed"
            )
        locked.status = PaymentRun.STATUS_RESUMED
        locked.finished_at = timezone.now()
        locked.save(update_fields=["status", "finished_at"])


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------
def process_payment(
    *,
    counterparty_id,
    direction,
    amount,
    acting_user,
    note: str = "",
    parent_run: PaymentRun | None = None,
) -> PaymentOutcome:
    """
    Pay `amount` against a counterparty's unpaid invoices, oldest first.

    Raises PaymentValidationError, PaymentAuthorizationError, NothingToPayError,
    OverpaymentError (all before any write), PaymentWriteError or
    PartialWriteError (after writes were attempted).
    """
    amt = validate_payment_amount(amount)
    direction = validate_direction(direction)
    require_capability(acting_user, CAP_PAYMENTS_RECORD)

    counterparty = get_counterparty(counterparty_id)

    logger.info(
        "Initiating payment",
        extra={
            "counterparty_id": str(counterparty.id),
            "direction": direction,
            "amount": str(amt),
            "acting_user_id": getattr(acting_user, "id", None),
        },
    )

    invoices = list(unpaid_invoices_queryset(counterparty.id, direction))
    plan = allocate(invoices, amt)

    if parent_run is not None:
        _claim_parent_run(parent_run)

    run = _open_run(
        counterparty_id=counterparty.id,
        direction=direction,
        amount=amt,
        acting_user=acting_user,
        note=note,
        parent=parent_run,
    )

    if _atomic_allocation_enabled():
        payments = _apply_all_or_nothing(
            plan=plan,
            run=run,
            counterparty_id=counterparty.id,
            direction=direction,
            acting_user=acting_user,
            note=note,
        )
    else:
        payments = _apply_sequentially(
            plan=plan,
            run=run,
            counterparty_id=counterparty.id,
            direction=direction,
            acting_user=acting_user,
            note=note,
        )

    updated_ids = [a.invoice_id for a in plan.allocations]
    _close_run(
        run,
        status=PaymentRun.STATUS_COMPLETED,
        applied_ids=updated_ids,
        pending_ids=[],
    )
    _notify_ledger_changed(counterparty_id=counterparty.id, direction=direction)

    logger.info(
        "Payment completed successfully",
        extra={
            "run_id": str(run.id),
            "invoices_updated": len(updated_ids),
            "settled_invoice_ids": plan.settled_invoice_ids,
        },
    )

    return PaymentOutcome(
        run_id=str(run.id),
        amount=amt,
        payment_ids=[str(p.id) for p in payments],
        updated_invoice_ids=updated_ids,
        allocation=plan,
    )


def _apply_all_or_nothing(*, plan, run, counterparty_id, direction, acting_user, note) -> list[Payment]:
    payments: list[Payment] = []
    try:
        with transaction.atomic():
            for alloc in plan.allocations:
                payments.append(
                    _apply_allocation(
                        allocation=alloc,
                        counterparty_id=counterparty_id,
                        direction=direction,
                        run=run,
                        acting_user=acting_user,
                        note=note,
                    )
                )
    except Exception as exc:
        pending = plan.invoice_ids
        logger.exception(
            "Payment rolled back; no invoice was updated",
            extra={"run_id": str(run.id), "pending_invoice_ids": pending},
        )
        _close_run(
            run,
            status=PaymentRun.STATUS_FAILED,
            applied_ids=[],
            pending_ids=pending,
            error=str(exc),
        )
        raise PaymentWriteError(
            f"Failed to record payment; nothing was applied. ({exc})",
            run_id=run.id,
            applied_invoice_ids=[],
            pending_invoice_ids=pending,
        ) from exc

    return payments


def _apply_sequentially(*, plan, run, counterparty_id, direction, acting_user, note) -> list[Payment]:
    payments: list[Payment] = []
    applied_ids: list[str] = []

    for index, alloc in enumerate(plan.allocations):
        try:
            payments.append(
                _apply_allocation(
                    allocation=alloc,
                    counterparty_id=counterparty_id,
                    direction=direction,
                    run=run,
                    acting_user=acting_user,
                    note=note,
                )
            )
        except Exception as exc:
            pending_ids = [a.invoice_id for a in plan.allocations[index:]]

            if not applied_ids:
                logger.exception(
                    "Payment failed before any invoice was updated",
                    extra={"run_id": str(run.id), "pending_invoice_ids": pending_ids},
                )
                _close_run(
                    run,
                    status=PaymentRun.STATUS_FAILED,
                    applied_ids=[],
                    pending_ids=pending_ids,
                    error=str(exc),
                )
                raise PaymentWriteError(
                    f"Failed to record payment; nothing was applied. ({exc})",
                    run_id=run.id,
                    applied_invoice_ids=[],
                    pending_invoice_ids=pending_ids,
                ) from exc

            logger.error(
                "PARTIAL PAYMENT: manual reconciliation required",
                extra={
                    "run_id": str(run.id),
                    "counterparty_id": str(counterparty_id),
                    "applied_invoice_ids": applied_ids,
                    "pending_invoice_ids": pending_ids,
                    "error": str(exc),
                },
            )
            _close_run(
                run,
                status=PaymentRun.STATUS_PARTIAL,
                applied_ids=applied_ids,
                pending_ids=pending_ids,
                error=str(exc),
            )
            _notify_ledger_changed(counterparty_id=counterparty_id, direction=direction)
            raise PartialWriteError(
                run_id=run.id,
                applied_invoice_ids=applied_ids,
                pending_invoice_ids=pending_ids,
                cause=str(exc),
            ) from exc

        applied_ids.append(alloc.invoice_id)

    return payments


def resume_payment_run(*, run_id, acting_user) -> PaymentOutcome:
    """
    Retry path for PARTIAL / FAILED runs.

    The remainder is re-derived from persisted state:
        original amount_requested - sum(Payment.amount over the run chain)
    and then allocated FIFO against the invoices as they are NOW.
    """
    require_capability(acting_user, CAP_PAYMENTS_RECORD)

    try:
        run = PaymentRun.objects.select_related("parent").get(id=run_id)
    except (PaymentRun.DoesNotExist, ValueError, ValidationError) as exc:
        raise PaymentValidationError("Payment run not found") from exc

    if not run.is_resumable:
        raise PaymentValidationError(
            f"Payment run {run.id} is {run.status}; only partial or failed runs can be resumed"
        )

    original = run.root()
    remaining = _money(original.amount_requested) - run.amount_applied_in_chain()

    logger.info(
        "Resuming payment run",
        extra={
            "run_id": str(run.id),
            "root_run_id": str(original.id),
            "remaining": str(remaining),
        },
    )

    if remaining <= Decimal("0.00"):
        _close_run(
            run,
            status=PaymentRun.STATUS_COMPLETED,
            applied_ids=run.applied_invoice_ids,
            pending_ids=[],
        )
        return PaymentOutcome(run_id=str(run.id), amount=Decimal("0.00"))

    return process_payment(
        counterparty_id=run.counterparty_id,
        direction=run.direction,
        amount=remaining,
        acting_user=acting_user,
        note=run.note,
        parent_run=run,
    )


def record_invoice_payment(
    *,
    invoice_id,
    amount,
    acting_user,
    note: str = "",
    capability: str = CAP_PAYMENTS_RECORD,
) -> PaymentOutcome:
    """
    Pay one specific invoice (e.g. the amount handed over at the counter when
    the sale is created). Same write primitive as process_payment; refuses
    amounts above the invoice balance.
    """
    amt = validate_payment_amount(amount)
    require_capability(acting_user, capability)

    try:
        invoice = Invoice.objects.get(id=invoice_id)
    except (Invoice.DoesNotExist, ValueError, ValidationError) as exc:
        raise PaymentValidationError("Invoice not found") from exc

    plan = allocate([invoice], amt)
    alloc = plan.allocations[0]

    with transaction.atomic():
        run = _open_run(
            counterparty_id=invoice.counterparty_id,
            direction=invoice.direction,
            amount=amt,
            acting_user=acting_user,
            note=note,
            parent=None,
        )
        payment = _apply_allocation(
            allocation=alloc,
            counterparty_id=invoice.counterparty_id,
            direction=invoice.direction,
            run=run,
            acting_user=acting_user,
            note=note,
        )
        _close_run(
            run,
            status=PaymentRun.STATUS_COMPLETED,
            applied_ids=[alloc.invoice_id],
            pending_ids=[],
        )

    _notify_ledger_changed(counterparty_id=invoice.counterparty_id, direction=invoice.direction)

    return PaymentOutcome(
        run_id=str(run.id),
        amount=amt,
        payment_ids=[str(payment.id)],
        updated_invoice_ids=[alloc.invoice_id],
        allocation=plan,
    )
