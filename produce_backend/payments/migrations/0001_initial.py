"""
MIGRATION: CREATE PaymentRun + Payment

- PaymentRun: reconciliation log, one row per payment request
- Payment: write-once, one row per invoice a payment touches
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("branches", "0001_initial"),
        ("entities", "0001_initial"),
        ("invoices", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentRun",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        primary_key=True,
                        default=uuid.uuid4,
                        editable=False,
                        serialize=False,
                    ),
                ),
                ("direction", models.CharField(max_length=20)),
                (
                    "amount_requested",
                    models.DecimalField(max_digits=14, decimal_places=2),
                ),
                (
                    "status",
                    models.CharField(
                        max_length=20,
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("partial", "Partially applied"),
                            ("failed", "Failed"),
                            ("resumed", "Resumed by a later run"),
                        ],
                        default="pending",
                    ),
                ),
                ("applied_invoice_ids", models.JSONField(default=list, blank=True)),
                ("pending_invoice_ids", models.JSONField(default=list, blank=True)),
                ("error", models.TextField(blank=True, default="")),
                (
                    "acting_user_id",
                    models.CharField(max_length=64, blank=True, default=""),
                ),
                ("note", models.CharField(max_length=255, blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("finished_at", models.DateTimeField(null=True, blank=True)),
                (
                    "counterparty",
                    models.ForeignKey(
                        to="entities.counterparty",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_runs",
                    ),
                ),
                (
                    "parent",
                    models.ForeignKey(
                        to="payments.paymentrun",
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="resumptions",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["counterparty", "created_at"],
                        name="paymentrun_cp_created_idx",
                    ),
                    models.Index(fields=["status"], name="paymentrun_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        primary_key=True,
                        default=uuid.uuid4,
                        editable=False,
                        serialize=False,
                    ),
                ),
                ("amount", models.DecimalField(max_digits=14, decimal_places=2)),
                (
                    "direction_tag",
                    models.CharField(
                        max_length=10,
                        choices=[("credit", "Credit"), ("debit", "Debit")],
                    ),
                ),
                ("note", models.CharField(max_length=255, blank=True, default="")),
                (
                    "created_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now, db_index=True
                    ),
                ),
                (
                    "branch",
                    models.ForeignKey(
                        to="branches.branch",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                    ),
                ),
                (
                    "counterparty",
                    models.ForeignKey(
                        to="entities.counterparty",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        to=settings.AUTH_USER_MODEL,
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments_recorded",
                    ),
                ),
                (
                    "invoice",
                    models.ForeignKey(
                        to="invoices.invoice",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                    ),
                ),
                (
                    "run",
                    models.ForeignKey(
                        to="payments.paymentrun",
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount__gt=Decimal("0.00")),
                        name="payment_amount_gt_zero",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(direction_tag__in=["credit", "debit"]),
                        name="payment_direction_tag_valid",
                    ),
                ],
                "indexes": [
                    models.Index(
                        fields=["counterparty", "created_at"],
                        name="payment_cp_created_idx",
                    ),
                    models.Index(
                        fields=["invoice", "created_at"],
                        name="payment_invoice_created_idx",
                    ),
                    models.Index(
                        fields=["branch", "created_at"],
                        name="payment_branch_created_idx",
                    ),
                ],
            },
        ),
    ]
