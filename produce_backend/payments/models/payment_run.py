# payments/models/payment_run.py

import uuid
from decimal import Decimal

from django.db import models
from django.db.models import Sum
from django.db.models.functions import Coalesce


class PaymentRun(models.Model):
    """
    One row per payment request: the reconciliation log.

    Written OUTSIDE the allocation transaction so it survives rollback.
    A PARTIAL or FAILED run can be resumed; the resume path re-derives the
    remaining amount from persisted Payment rows of the run chain, never from
    the original allocation plan.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_PARTIAL = "partial"
    STATUS_FAILED = "failed"
    STATUS_RESUMED = "resumed"

    STATUSES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_PARTIAL, "Partially applied"),
        (STATUS_FAILED, "Failed"),
        (STATUS_RESUMED, "Resumed by a later run"),
    ]

    RESUMABLE_STATUSES = {STATUS_PARTIAL, STATUS_FAILED}

    counterparty = models.ForeignKey(
        "entities.Counterparty",
        on_delete=models.PROTECT,
        related_name="payment_runs",
    )
    direction = models.CharField(max_length=20)

    amount_requested = models.DecimalField(max_digits=14, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUSES, default=STATUS_PENDING)

    applied_invoice_ids = models.JSONField(default=list, blank=True)
    pending_invoice_ids = models.JSONField(default=list, blank=True)
    error = models.TextField(blank=True, default="")

    acting_user_id = models.CharField(max_length=64, blank=True, default="")
    note = models.CharField(max_length=255, blank=True, default="")

    parent = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="resumptions",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["counterparty", "created_at"], name="paymentrun_cp_created_idx"),
            models.Index(fields=["status"], name="paymentrun_status_idx"),
        ]

    @property
    def is_resumable(self) -> bool:
        return self.status in self.RESUMABLE_STATUSES

    def root(self) -> "PaymentRun":
        run = self
        while run.parent_id:
            run = run.parent
        return run

    def chain_ids(self) -> list:
        """This run plus every ancestor (the original request and its resumptions)."""
        ids = []
        run = self
        while run is not None:
            ids.append(run.id)
            run = run.parent
        return ids

    def amount_applied_in_chain(self) -> Decimal:
        from payments.models.payment import Payment

        total = Payment.objects.filter(run_id__in=self.chain_ids()).aggregate(
            total=Coalesce(Sum("amount"), Decimal("0.00"))
        )["total"]
        return Decimal(str(total)).quantize(Decimal("0.01"))

    def __str__(self):
        return f"run {str(self.id)[:8]} | {self.amount_requested} | {self.status}"
