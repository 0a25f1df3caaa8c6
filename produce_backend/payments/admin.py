# payments/admin.py

from django.contrib import admin

from payments.models import Payment, PaymentRun


# ======================================================
# PAYMENT ADMIN (READ-ONLY)
# ======================================================


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "counterparty",
        "invoice",
        "branch",
        "amount",
        "direction_tag",
        "created_at",
    )
    list_filter = ("direction_tag", "branch", "created_at")
    search_fields = ("counterparty__name", "note")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ======================================================
# PAYMENT RUN ADMIN (READ-ONLY)
# ======================================================


@admin.register(PaymentRun)
class PaymentRunAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "counterparty",
        "direction",
        "amount_requested",
        "status",
        "created_at",
        "finished_at",
    )
    list_filter = ("status", "direction")
    search_fields = ("counterparty__name", "acting_user_id")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
