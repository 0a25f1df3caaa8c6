# payments/exceptions.py

"""
PAYMENT & LEDGER ERRORS

Centralized domain errors for the payment allocation engine, the payment
processor and the ledger reconstructor.

Ordering guarantees (what has been touched when each one is raised):
- PaymentValidationError    -> nothing read yet
- PaymentAuthorizationError -> no financial data read yet
- NothingToPayError / OverpaymentError -> invoices read, nothing written
- PaymentWriteError         -> writes attempted, none committed
- PartialWriteError         -> some invoices committed, the rest not
"""

from __future__ import annotations


class PaymentError(Exception):
    """Base exception for all payment / ledger failures."""

    code = "payment_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict:
        return {"detail": self.message or str(self), "code": self.code}


class PaymentValidationError(PaymentError):
    """Bad input (non-positive amount, unknown counterparty, bad direction)."""

    code = "invalid_payment"


class PaymentAuthorizationError(PaymentError):
    """Caller's role does not allow the requested operation."""

    code = "not_authorized"


class NothingToPayError(PaymentError):
    """The counterparty has no unpaid invoices in that direction."""

    code = "nothing_to_pay"

    def __init__(self, message: str = "No outstanding balance found."):
        super().__init__(message)


class OverpaymentError(PaymentError):
    """Payment exceeds the total outstanding balance. Carries both figures."""

    code = "overpayment"

    def __init__(self, *, amount, total_outstanding):
        self.amount = amount
        self.total_outstanding = total_outstanding
        super().__init__(
            f"Payment amount ({amount}) exceeds total outstanding balance "
            f"({total_outstanding})."
        )

    def as_dict(self) -> dict:
        out = super().as_dict()
        out["amount"] = str(self.amount)
        out["total_outstanding"] = str(self.total_outstanding)
        return out


class PaymentWriteError(PaymentError):
    """
    A write failed while applying allocations.

    applied_invoice_ids lists invoices whose payment row + paid_amount update
    were committed; pending_invoice_ids lists the ones that were not.
    """

    code = "payment_write_failed"

    def __init__(
        self,
        message: str = "Failed to record payment.",
        *,
        run_id=None,
        applied_invoice_ids=None,
        pending_invoice_ids=None,
    ):
        super().__init__(message)
        self.run_id = str(run_id) if run_id else None
        self.applied_invoice_ids = [str(i) for i in (applied_invoice_ids or [])]
        self.pending_invoice_ids = [str(i) for i in (pending_invoice_ids or [])]

    def as_dict(self) -> dict:
        out = super().as_dict()
        out["run_id"] = self.run_id
        out["applied_invoice_ids"] = list(self.applied_invoice_ids)
        out["pending_invoice_ids"] = list(self.pending_invoice_ids)
        return out


class PartialWriteError(PaymentWriteError):
    """
    One or more invoices were already updated when a later write failed.

    Never retried automatically. Operators check the counterparty ledger and
    resume the run, which re-derives remaining work from persisted payments.
    """

    code = "partial_write"

    def __init__(self, *, run_id, applied_invoice_ids, pending_invoice_ids, cause=""):
        message = (
            f"Payment partially applied: {len(applied_invoice_ids)} invoice(s) "
            f"updated, {len(pending_invoice_ids)} not updated. Check the "
            "counterparty ledger before retrying."
        )
        if cause:
            message = f"{message} Cause: {cause}"
        super().__init__(
            message,
            run_id=run_id,
            applied_invoice_ids=applied_invoice_ids,
            pending_invoice_ids=pending_invoice_ids,
        )


class LedgerUnavailableError(PaymentError):
    """Backing store could not be read. Transient; safe to retry."""

    code = "ledger_unavailable"
