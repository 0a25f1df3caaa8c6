# entities/api/serializers.py

from rest_framework import serializers

from entities.models import Counterparty
from payments.services.invoice_query import cached_outstanding_balance


class CounterpartySerializer(serializers.ModelSerializer):
    outstanding_balance = serializers.SerializerMethodField()
    natural_direction = serializers.CharField(read_only=True)

    class Meta:
        model = Counterparty
        fields = [
            "id",
            "name",
            "entity_type",
            "phone",
            "location",
            "is_active",
            "natural_direction",
            "outstanding_balance",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ("id", "created_at", "updated_at")

    def get_outstanding_balance(self, obj):
        return str(cached_outstanding_balance(obj.id, obj.natural_direction))


class CounterpartyWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200, required=False)
    entity_type = serializers.ChoiceField(
        choices=[Counterparty.TYPE_CUSTOMER, Counterparty.TYPE_SUPPLIER],
        required=False,
    )
    phone = serializers.CharField(max_length=50, required=False, allow_blank=True)
    location = serializers.CharField(max_length=255, required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False)
