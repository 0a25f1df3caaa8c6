# branches/models/branch.py

import uuid

from django.db import models
from django.db.models import Q


class Branch(models.Model):
    """
    Represents a physical trading branch (depot / market stall / warehouse).

    Guarantees:
    - Branches are stable master-data
    - code is optional, but if provided it must be unique
    - exactly one branch may be flagged as the admin (head-office) branch
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255)

    code = models.CharField(
        max_length=50,
        null=True,
        blank=True,
        help_text="Unique branch code (optional). If set, must be unique.",
        db_index=True,
    )

    location = models.TextField(blank=True)
    phone = models.CharField(max_length=50, blank=True)

    is_admin_branch = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "branches"
        constraints = [
            models.UniqueConstraint(
                fields=["code"],
                condition=Q(code__isnull=False) & ~Q(code=""),
                name="uniq_branch_code_when_present",
            ),
            models.UniqueConstraint(
                fields=["is_admin_branch"],
                condition=Q(is_admin_branch=True),
                name="uniq_single_admin_branch",
            ),
        ]

    def __str__(self):
        c = (self.code or "").strip()
        if c:
            return f"{self.name} ({c})"
        return self.name
