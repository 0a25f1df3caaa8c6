# payments/signals.py

"""
LEDGER CHANGE NOTIFICATIONS

ledger_changed is sent after invoice/payment writes commit. Receivers refresh
anything derived from invoice balances (cached counterparty balances,
dashboard aggregates). Senders never know who listens.
"""

import logging

from django.core.cache import cache
from django.dispatch import Signal, receiver

from payments.services.invoice_query import DASHBOARD_CACHE_KEY, balance_cache_key

logger = logging.getLogger("payments")

# kwargs: counterparty_id, direction
ledger_changed = Signal()


@receiver(ledger_changed)
def invalidate_balance_caches(sender, counterparty_id, direction, **kwargs):
    cache.delete_many(
        [
            balance_cache_key(counterparty_id, direction),
            DASHBOARD_CACHE_KEY,
        ]
    )
    logger.debug(
        "Ledger caches invalidated",
        extra={"counterparty_id": str(counterparty_id), "direction": direction},
    )
