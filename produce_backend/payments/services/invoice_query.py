# payments/services/invoice_query.py

"""
LEDGER STORE READS (READ-ONLY)

- unpaid invoices for (counterparty, direction), oldest first
- outstanding balance aggregates, computed from live invoice rows
- cached variants for list views / dashboard (invalidated by ledger_changed)
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ValidationError

from entities.models import Counterparty
from invoices.models import Invoice
from payments.exceptions import PaymentAuthorizationError, PaymentValidationError
from permissions.roles import CAP_LEDGER_VIEW

DIRECTIONS = {Invoice.DIRECTION_SALE, Invoice.DIRECTION_PURCHASE}

DASHBOARD_CACHE_KEY = "payments:dashboard:outstanding"


def balance_cache_key(counterparty_id, direction) -> str:
    return f"payments:outstanding:{counterparty_id}:{direction}"


def validate_direction(direction) -> str:
    d = (direction or "").strip().lower()
    if d not in DIRECTIONS:
        raise PaymentValidationError("direction must be 'sale' or 'purchase'")
    return d


def get_counterparty(counterparty_id) -> Counterparty:
    if not counterparty_id:
        raise PaymentValidationError("counterparty_id is required")
    try:
        return Counterparty.objects.get(id=counterparty_id)
    except (Counterparty.DoesNotExist, ValueError, ValidationError) as exc:
        raise PaymentValidationError("Counterparty not found") from exc


def require_capability(acting_user, capability: str) -> None:
    if acting_user is None or not acting_user.has_capability(capability):
        raise PaymentAuthorizationError(
            f"Not allowed: '{capability}' capability required"
        )


def unpaid_invoices_queryset(counterparty_id, direction):
    return (
        Invoice.objects.for_counterparty(counterparty_id, direction)
        .unpaid()
        .fifo()
    )


def list_unpaid_invoices(*, counterparty_id, direction, acting_user=None) -> list[Invoice]:
    """
    Unpaid invoices (balance > 0) for one counterparty + direction, oldest first.

    Payments settle a counterparty's debt as a whole, so every branch's invoices
    are returned regardless of who asks; branch scoping applies to ledger reads
    for non-admin staff, not to FIFO settlement.
    """
    direction = validate_direction(direction)
    if acting_user is not None:
        require_capability(acting_user, CAP_LEDGER_VIEW)
    get_counterparty(counterparty_id)
    return list(unpaid_invoices_queryset(counterparty_id, direction))


def outstanding_balance(counterparty_id, direction) -> Decimal:
    """Sum of unpaid invoice balances, straight from invoice rows."""
    direction = validate_direction(direction)
    return Invoice.objects.for_counterparty(counterparty_id, direction).total_outstanding()


def cached_outstanding_balance(counterparty_id, direction) -> Decimal:
    key = balance_cache_key(counterparty_id, direction)
    cached = cache.get(key)
    if cached is not None:
        return Decimal(cached)

    value = outstanding_balance(counterparty_id, direction)
    cache.set(key, str(value), settings.LEDGER_CACHE_TIMEOUT)
    return value


def outstanding_totals(*, branch_id=None) -> dict:
    """
    Dashboard aggregates: what customers owe us, what we owe suppliers.
    Only the all-branches figure is cached.
    """
    if branch_id is None:
        cached = cache.get(DASHBOARD_CACHE_KEY)
        if cached is not None:
            return {k: Decimal(v) for k, v in cached.items()}

    qs = Invoice.objects.all()
    if branch_id is not None:
        qs = qs.filter(branch_id=branch_id)

    totals = {
        "receivable": qs.filter(direction=Invoice.DIRECTION_SALE).total_outstanding(),
        "payable": qs.filter(direction=Invoice.DIRECTION_PURCHASE).total_outstanding(),
    }

    if branch_id is None:
        cache.set(
            DASHBOARD_CACHE_KEY,
            {k: str(v) for k, v in totals.items()},
            settings.LEDGER_CACHE_TIMEOUT,
        )
    return totals
