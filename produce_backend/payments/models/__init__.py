from .payment import Payment
from .payment_run import PaymentRun

__all__ = ["Payment", "PaymentRun"]
