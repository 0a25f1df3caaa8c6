from django.contrib import admin

from invoices.models import Invoice, InvoiceItem


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    readonly_fields = ("description", "unit", "quantity", "unit_price")
    can_delete = False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "counterparty",
        "direction",
        "branch",
        "total_amount",
        "paid_amount",
        "created_at",
    )
    list_filter = ("direction", "branch", "created_at")
    search_fields = ("counterparty__name", "notes")
    readonly_fields = (
        "counterparty",
        "direction",
        "branch",
        "total_amount",
        "paid_amount",
        "created_by",
        "created_at",
    )
    inlines = [InvoiceItemInline]
