# invoices/models/invoice_item.py

import uuid
from decimal import ROUND_HALF_UP, Decimal

from django.core.exceptions import ValidationError
from django.db import models

TWOPLACES = Decimal("0.01")


def _money(v) -> Decimal:
    return Decimal(str(v or "0.00")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


class InvoiceItem(models.Model):
    """
    Invoice line. Produce is traded by the carton, tray or kg.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    UNIT_CARTON = "carton"
    UNIT_TRAY = "tray"
    UNIT_KG = "kg"

    UNITS = [
        (UNIT_CARTON, "Carton"),
        (UNIT_TRAY, "Tray"),
        (UNIT_KG, "Kg"),
    ]

    invoice = models.ForeignKey(
        "invoices.Invoice",
        on_delete=models.CASCADE,
        related_name="items",
    )

    description = models.CharField(max_length=200)
    unit = models.CharField(max_length=10, choices=UNITS, default=UNIT_KG)

    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal("0.00")
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=Decimal("0")),
                name="invoice_item_quantity_gt_zero",
            ),
            models.CheckConstraint(
                condition=models.Q(unit_price__gte=Decimal("0.00")),
                name="invoice_item_unit_price_nonnegative",
            ),
        ]

    def clean(self):
        if not (self.description or "").strip():
            raise ValidationError({"description": "description is required"})

        if self.quantity is not None and self.quantity <= Decimal("0"):
            raise ValidationError({"quantity": "quantity must be > 0"})

        if self.unit_price is not None and self.unit_price < Decimal("0.00"):
            raise ValidationError({"unit_price": "unit_price cannot be negative"})

    @property
    def line_total(self) -> Decimal:
        return _money(Decimal(str(self.quantity)) * Decimal(str(self.unit_price)))

    def save(self, *args, **kwargs):
        if self.description is not None:
            self.description = self.description.strip()
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.description} x {self.quantity} {self.unit}"
