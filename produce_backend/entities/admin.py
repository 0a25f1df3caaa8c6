from django.contrib import admin

from entities.models import Counterparty


@admin.register(Counterparty)
class CounterpartyAdmin(admin.ModelAdmin):
    list_display = ("name", "entity_type", "phone", "is_active", "created_at")
    list_filter = ("entity_type", "is_active")
    search_fields = ("name", "phone")
