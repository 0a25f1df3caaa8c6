# users/admin.py

"""
USERS ADMIN REGISTRATION

Approving a sign-up = pick a role, assign a branch, set is_approved.
Non-admin staff cannot be approved without a branch (User.clean).
"""

from __future__ import annotations

from django.contrib import admin, messages
from django.contrib.auth import get_user_model
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin
from django.core.exceptions import ValidationError

User = get_user_model()


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    ordering = ("email",)
    list_display = ("email", "full_name", "role", "branch", "is_approved", "is_active")
    list_filter = ("role", "is_approved", "is_active", "branch")
    search_fields = ("email", "full_name", "branch__name")
    list_select_related = ("branch",)
    actions = ["approve_selected"]

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Branch & role", {"fields": ("full_name", "role", "branch", "is_approved")}),
        ("Access", {"fields": ("is_active", "is_staff", "is_superuser")}),
    )

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "password1", "password2", "role", "branch", "is_approved"),
            },
        ),
    )

    @admin.action(description="Approve selected users")
    def approve_selected(self, request, queryset):
        approved, skipped = 0, []
        for user in queryset.filter(is_approved=False):
            user.is_approved = True
            try:
                user.full_clean(exclude=["password"])
            except ValidationError:
                skipped.append(user.email)
                continue
            user.save(update_fields=["is_approved", "updated_at"])
            approved += 1

        if approved:
            self.message_user(request, f"Approved {approved} user(s).", messages.SUCCESS)
        if skipped:
            self.message_user(
                request,
                "Assign a branch before approving: " + ", ".join(skipped),
                messages.WARNING,
            )
