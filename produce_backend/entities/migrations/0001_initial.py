"""
MIGRATION: CREATE Counterparty (customers + suppliers)
"""

from __future__ import annotations

import uuid

from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Counterparty",
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
                ("name", models.CharField(max_length=200)),
                (
                    "entity_type",
                    models.CharField(
                        max_length=20,
                        choices=[("customer", "Customer"), ("supplier", "Supplier")],
                    ),
                ),
                ("phone", models.CharField(max_length=50, blank=True, default="")),
                ("location", models.CharField(max_length=255, blank=True, default="")),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
                "verbose_name_plural": "counterparties",
                "indexes": [
                    models.Index(
                        fields=["entity_type", "name"],
                        name="counterparty_type_name_idx",
                    ),
                    models.Index(
                        fields=["is_active"],
                        name="counterparty_active_idx",
                    ),
                ],
            },
        ),
    ]
