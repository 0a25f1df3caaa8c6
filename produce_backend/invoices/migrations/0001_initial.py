"""
MIGRATION: CREATE Invoice + InvoiceItem

Note: there is deliberately no balance column. Balance is
total_amount - paid_amount, computed at read time.
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
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Invoice",
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
                (
                    "direction",
                    models.CharField(
                        max_length=20,
                        choices=[("sale", "Sale"), ("purchase", "Purchase")],
                    ),
                ),
                (
                    "total_amount",
                    models.DecimalField(
                        max_digits=14, decimal_places=2, default=Decimal("0.00")
                    ),
                ),
                (
                    "paid_amount",
                    models.DecimalField(
                        max_digits=14, decimal_places=2, default=Decimal("0.00")
                    ),
                ),
                ("notes", models.CharField(max_length=255, blank=True, default="")),
                (
                    "created_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now, db_index=True
                    ),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "branch",
                    models.ForeignKey(
                        to="branches.branch",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="invoices",
                    ),
                ),
                (
                    "counterparty",
                    models.ForeignKey(
                        to="entities.counterparty",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="invoices",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        to=settings.AUTH_USER_MODEL,
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="invoices_created",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(total_amount__gte=Decimal("0.00")),
                        name="invoice_total_nonnegative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(paid_amount__gte=Decimal("0.00")),
                        name="invoice_paid_nonnegative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(paid_amount__lte=models.F("total_amount")),
                        name="invoice_paid_lte_total",
                    ),
                ],
                "indexes": [
                    models.Index(
                        fields=["counterparty", "direction", "created_at"],
                        name="invoice_cp_dir_created_idx",
                    ),
                    models.Index(
                        fields=["branch", "created_at"],
                        name="invoice_branch_created_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceItem",
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
                ("description", models.CharField(max_length=200)),
                (
                    "unit",
                    models.CharField(
                        max_length=10,
                        choices=[("carton", "Carton"), ("tray", "Tray"), ("kg", "Kg")],
                        default="kg",
                    ),
                ),
                ("quantity", models.DecimalField(max_digits=12, decimal_places=3)),
                (
                    "unit_price",
                    models.DecimalField(
                        max_digits=14, decimal_places=2, default=Decimal("0.00")
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "invoice",
                    models.ForeignKey(
                        to="invoices.invoice",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(quantity__gt=Decimal("0")),
                        name="invoice_item_quantity_gt_zero",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(unit_price__gte=Decimal("0.00")),
                        name="invoice_item_unit_price_nonnegative",
                    ),
                ],
            },
        ),
    ]
