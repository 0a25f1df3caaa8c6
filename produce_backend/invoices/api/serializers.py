# invoices/api/serializers.py

from rest_framework import serializers

from invoices.models import Invoice, InvoiceItem


class InvoiceItemSerializer(serializers.ModelSerializer):
    line_total = serializers.SerializerMethodField()

    class Meta:
        model = InvoiceItem
        fields = ["id", "description", "unit", "quantity", "unit_price", "line_total"]

    def get_line_total(self, obj):
        return str(obj.line_total)


class InvoiceSerializer(serializers.ModelSerializer):
    counterparty_name = serializers.CharField(source="counterparty.name", read_only=True)
    balance = serializers.SerializerMethodField()
    is_settled = serializers.BooleanField(read_only=True)
    items = InvoiceItemSerializer(many=True, read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "counterparty",
            "counterparty_name",
            "direction",
            "branch",
            "total_amount",
            "paid_amount",
            "balance",
            "is_settled",
            "notes",
            "created_by",
            "created_at",
            "items",
        ]
        read_only_fields = fields

    def get_balance(self, obj):
        return str(obj.balance)


class InvoiceItemCreateSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=200)
    unit = serializers.ChoiceField(
        choices=[InvoiceItem.UNIT_CARTON, InvoiceItem.UNIT_TRAY, InvoiceItem.UNIT_KG],
        required=False,
    )
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=2)


class InvoiceCreateSerializer(serializers.Serializer):
    counterparty_id = serializers.UUIDField()
    direction = serializers.ChoiceField(
        choices=[Invoice.DIRECTION_SALE, Invoice.DIRECTION_PURCHASE],
        required=False,
    )
    branch_id = serializers.UUIDField(required=False, allow_null=True)
    items = InvoiceItemCreateSerializer(many=True, required=False)
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    paid_amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True)
