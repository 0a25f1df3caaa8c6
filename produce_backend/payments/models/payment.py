# payments/models/payment.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

User = settings.AUTH_USER_MODEL


class Payment(models.Model):
    """
    Money applied to exactly ONE invoice.

    RULES:
    - A payment covering N invoices is stored as N rows (one per allocation).
    - branch is inherited from the invoice it pays.
    - Write-once: rows are never edited or deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    TAG_CREDIT = "credit"  # sale-side receipt (money in)
    TAG_DEBIT = "debit"  # purchase-side disbursement (money out)

    TAGS = [
        (TAG_CREDIT, "Credit"),
        (TAG_DEBIT, "Debit"),
    ]

    counterparty = models.ForeignKey(
        "entities.Counterparty",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    invoice = models.ForeignKey(
        "invoices.Invoice",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    branch = models.ForeignKey(
        "branches.Branch",
        on_delete=models.PROTECT,
        related_name="payments",
    )

    amount = models.DecimalField(max_digits=14, decimal_places=2)
    direction_tag = models.CharField(max_length=10, choices=TAGS)
    note = models.CharField(max_length=255, blank=True, default="")

    run = models.ForeignKey(
        "payments.PaymentRun",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
    )

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments_recorded",
    )

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=Decimal("0.00")),
                name="payment_amount_gt_zero",
            ),
            models.CheckConstraint(
                condition=models.Q(direction_tag__in=["credit", "debit"]),
                name="payment_direction_tag_valid",
            ),
        ]
        indexes = [
            models.Index(fields=["counterparty", "created_at"], name="payment_cp_created_idx"),
            models.Index(fields=["invoice", "created_at"], name="payment_invoice_created_idx"),
            models.Index(fields=["branch", "created_at"], name="payment_branch_created_idx"),
        ]

    def clean(self):
        if self.amount is not None and self.amount <= Decimal("0.00"):
            raise ValidationError({"amount": "amount must be > 0"})

        if self.direction_tag not in {self.TAG_CREDIT, self.TAG_DEBIT}:
            raise ValidationError({"direction_tag": "Invalid direction_tag"})

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Payments are immutable once recorded.")
        if self.note is not None:
            self.note = self.note.strip()
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Payments cannot be deleted.")

    def __str__(self):
        return f"{self.direction_tag} {self.amount} -> {str(self.invoice_id)[:8]}"
