# entities/models/counterparty.py

import uuid

from django.core.exceptions import ValidationError
from django.db import models


class Counterparty(models.Model):
    """
    Customer or supplier master record.

    Outstanding balance is NOT stored here. It is derived from invoice rows
    (see payments.services.invoice_query.outstanding_balance) and only ever
    cached, never persisted as a field of truth.
    """

    TYPE_CUSTOMER = "customer"
    TYPE_SUPPLIER = "supplier"

    TYPES = [
        (TYPE_CUSTOMER, "Customer"),
        (TYPE_SUPPLIER, "Supplier"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=200)
    entity_type = models.CharField(max_length=20, choices=TYPES)

    phone = models.CharField(max_length=50, blank=True, default="")
    location = models.CharField(max_length=255, blank=True, default="")

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "counterparties"
        indexes = [
            models.Index(fields=["entity_type", "name"], name="counterparty_type_name_idx"),
            models.Index(fields=["is_active"], name="counterparty_active_idx"),
        ]

    @property
    def is_supplier(self) -> bool:
        return self.entity_type == self.TYPE_SUPPLIER

    @property
    def natural_direction(self) -> str:
        """Customers are billed through sales, suppliers through purchases."""
        return "purchase" if self.is_supplier else "sale"

    def clean(self):
        if not (self.name or "").strip():
            raise ValidationError({"name": "name is required"})

        if self.entity_type not in {self.TYPE_CUSTOMER, self.TYPE_SUPPLIER}:
            raise ValidationError({"entity_type": "Invalid entity_type"})

    def save(self, *args, **kwargs):
        if self.name is not None:
            self.name = self.name.strip()
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.name} ({self.entity_type})"
