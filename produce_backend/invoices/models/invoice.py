# invoices/models/invoice.py

import uuid
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import DecimalField, ExpressionWrapper, F, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

TWOPLACES = Decimal("0.01")


def _money(v) -> Decimal:
    return Decimal(str(v or "0.00")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


User = settings.AUTH_USER_MODEL


class InvoiceQuerySet(models.QuerySet):
    def for_counterparty(self, counterparty_id, direction=None):
        qs = self.filter(counterparty_id=counterparty_id)
        if direction:
            qs = qs.filter(direction=direction)
        return qs

    def unpaid(self):
        return self.filter(paid_amount__lt=F("total_amount"))

    def fifo(self):
        """Oldest first; id breaks timestamp ties deterministically."""
        return self.order_by("created_at", "id")

    def with_balance(self):
        return self.annotate(
            outstanding=ExpressionWrapper(
                F("total_amount") - F("paid_amount"),
                output_field=DecimalField(max_digits=14, decimal_places=2),
            )
        )

    def total_outstanding(self) -> Decimal:
        agg = self.aggregate(
            total=Coalesce(
                Sum(
                    F("total_amount") - F("paid_amount"),
                    output_field=DecimalField(max_digits=14, decimal_places=2),
                ),
                Decimal("0.00"),
                output_field=DecimalField(max_digits=14, decimal_places=2),
            )
        )
        return _money(agg["total"])


class Invoice(models.Model):
    """
    Sale (customer) or purchase (supplier) transaction header.

    RULES:
    - total_amount is fixed at creation.
    - paid_amount only moves up, and only through the payment processor
      (queryset update on a locked row). save() refuses to change it.
    - balance is derived (total_amount - paid_amount). There is no column for it.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    DIRECTION_SALE = "sale"
    DIRECTION_PURCHASE = "purchase"

    DIRECTIONS = [
        (DIRECTION_SALE, "Sale"),
        (DIRECTION_PURCHASE, "Purchase"),
    ]

    counterparty = models.ForeignKey(
        "entities.Counterparty",
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    direction = models.CharField(max_length=20, choices=DIRECTIONS)

    branch = models.ForeignKey(
        "branches.Branch",
        on_delete=models.PROTECT,
        related_name="invoices",
    )

    total_amount = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal("0.00")
    )
    paid_amount = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal("0.00")
    )

    notes = models.CharField(max_length=255, blank=True, default="")

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="invoices_created",
    )

    # FIFO key. Defaults to now but stays overridable for imports/backfills.
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = InvoiceQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=Decimal("0.00")),
                name="invoice_total_nonnegative",
            ),
            models.CheckConstraint(
                condition=models.Q(paid_amount__gte=Decimal("0.00")),
                name="invoice_paid_nonnegative",
            ),
            models.CheckConstraint(
                condition=models.Q(paid_amount__lte=F("total_amount")),
                name="invoice_paid_lte_total",
            ),
        ]
        indexes = [
            models.Index(
                fields=["counterparty", "direction", "created_at"],
                name="invoice_cp_dir_created_idx",
            ),
            models.Index(fields=["branch", "created_at"], name="invoice_branch_created_idx"),
        ]

    _IMMUTABLE_FIELDS = (
        "counterparty_id",
        "direction",
        "branch_id",
        "total_amount",
        "paid_amount",
        "created_at",
    )

    @property
    def balance(self) -> Decimal:
        return _money(self.total_amount) - _money(self.paid_amount)

    @property
    def is_settled(self) -> bool:
        return self.balance <= Decimal("0.00")

    @property
    def payment_direction_tag(self) -> str:
        """Money in for sales (credit), money out for purchases (debit)."""
        return "debit" if self.direction == self.DIRECTION_PURCHASE else "credit"

    def clean(self):
        if self.direction not in {self.DIRECTION_SALE, self.DIRECTION_PURCHASE}:
            raise ValidationError({"direction": "Invalid direction"})

        if self.total_amount is not None and self.total_amount < Decimal("0.00"):
            raise ValidationError({"total_amount": "total_amount cannot be negative"})

        if self.paid_amount is not None and self.paid_amount < Decimal("0.00"):
            raise ValidationError({"paid_amount": "paid_amount cannot be negative"})

        if (
            self.total_amount is not None
            and self.paid_amount is not None
            and self.paid_amount > self.total_amount
        ):
            raise ValidationError({"paid_amount": "paid_amount cannot exceed total_amount"})

    def _validate_immutable(self, previous: "Invoice"):
        for field in self._IMMUTABLE_FIELDS:
            before, after = getattr(previous, field), getattr(self, field)
            if isinstance(before, Decimal):
                before, after = _money(before), _money(after)
            if after != before:
                raise ValueError(
                    f"Invoice {self.pk}: field '{field}' cannot be changed after creation."
                )

    def save(self, *args, **kwargs):
        if self.pk and not self._state.adding:
            previous = Invoice.objects.filter(pk=self.pk).first()
            if previous is not None:
                self._validate_immutable(previous)

        if self.notes is not None:
            self.notes = self.notes.strip()

        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.direction} {str(self.id)[:8]} | {self.total_amount}"
