from .invoice import Invoice, InvoiceQuerySet
from .invoice_item import InvoiceItem

__all__ = ["Invoice", "InvoiceItem", "InvoiceQuerySet"]
