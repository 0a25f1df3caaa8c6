# payments/api/serializers.py

from rest_framework import serializers

from invoices.models import Invoice
from payments.models import Payment, PaymentRun

DIRECTION_CHOICES = [Invoice.DIRECTION_SALE, Invoice.DIRECTION_PURCHASE]


class UnpaidInvoiceSerializer(serializers.ModelSerializer):
    balance = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = [
            "id",
            "direction",
            "branch",
            "total_amount",
            "paid_amount",
            "balance",
            "notes",
            "created_at",
        ]

    def get_balance(self, obj):
        return str(obj.balance)


class PaymentRequestSerializer(serializers.Serializer):
    counterparty_id = serializers.UUIDField()
    direction = serializers.ChoiceField(choices=DIRECTION_CHOICES)
    # validated by the allocation engine so "<= 0" gets the domain error
    amount = serializers.CharField()
    note = serializers.CharField(required=False, allow_blank=True, max_length=255)


class PaymentPreviewRequestSerializer(serializers.Serializer):
    counterparty_id = serializers.UUIDField()
    direction = serializers.ChoiceField(choices=DIRECTION_CHOICES)
    amount = serializers.CharField()


class PaymentSerializer(serializers.ModelSerializer):
    counterparty_name = serializers.CharField(source="counterparty.name", read_only=True)
    branch_name = serializers.CharField(source="branch.name", read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "counterparty",
            "counterparty_name",
            "invoice",
            "branch",
            "branch_name",
            "amount",
            "direction_tag",
            "note",
            "run",
            "created_by",
            "created_at",
        ]
        read_only_fields = fields


class PaymentRunSerializer(serializers.ModelSerializer):
    amount_applied = serializers.SerializerMethodField()
    is_resumable = serializers.BooleanField(read_only=True)

    class Meta:
        model = PaymentRun
        fields = [
            "id",
            "counterparty",
            "direction",
            "amount_requested",
            "amount_applied",
            "status",
            "is_resumable",
            "applied_invoice_ids",
            "pending_invoice_ids",
            "error",
            "acting_user_id",
            "note",
            "parent",
            "created_at",
            "finished_at",
        ]
        read_only_fields = fields

    def get_amount_applied(self, obj):
        return str(obj.amount_applied_in_chain())
