from django.contrib import admin

from branches.models import Branch


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "is_admin_branch", "is_active", "created_at")
    list_filter = ("is_active", "is_admin_branch")
    search_fields = ("name", "code")
