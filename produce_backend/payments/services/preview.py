# payments/services/preview.py

"""
ALLOCATION PREVIEW (READ-ONLY)

Shows the FIFO breakdown a payment WOULD produce. No writes, no locks.
The processor recomputes from fresh rows at commit time; a preview is never
replayed.
"""

from __future__ import annotations

from payments.allocation import (
    AllocationResult,
    allocate,
    preview_breakdown,
    validate_payment_amount,
)
from payments.services.invoice_query import (
    get_counterparty,
    require_capability,
    unpaid_invoices_queryset,
    validate_direction,
)
from permissions.roles import CAP_LEDGER_VIEW


def preview_allocation(
    *, counterparty_id, direction, amount, acting_user=None
) -> AllocationResult:
    amt = validate_payment_amount(amount)
    direction = validate_direction(direction)

    if acting_user is not None:
        require_capability(acting_user, CAP_LEDGER_VIEW)

    get_counterparty(counterparty_id)

    invoices = list(unpaid_invoices_queryset(counterparty_id, direction))
    return allocate(invoices, amt)


def form_breakdown(*, counterparty_id, direction, amount, acting_user=None) -> dict:
    """
    Row-per-invoice breakdown for the payment form while the amount is being
    typed. Out-of-range amounts are flagged (is_valid_amount=False), not raised.
    """
    direction = validate_direction(direction)

    if acting_user is not None:
        require_capability(acting_user, CAP_LEDGER_VIEW)

    get_counterparty(counterparty_id)

    invoices = list(unpaid_invoices_queryset(counterparty_id, direction))
    return preview_breakdown(invoices, amount)
