# invoices/api/views.py

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import generics, status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from invoices.api.serializers import InvoiceCreateSerializer, InvoiceSerializer
from invoices.models import Invoice
from invoices.services.invoice_service import (
    InvoiceError,
    InvoicePermissionError,
    create_invoice,
)
from permissions.roles import ActingUser, IsStaff


def _scoped(qs, user):
    acting_user = ActingUser.from_user(user)
    if acting_user.is_privileged:
        return qs
    return qs.filter(branch_id=acting_user.branch_id)


class InvoiceListCreateView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, IsStaff]
    serializer_class = InvoiceSerializer
    filterset_fields = ["counterparty", "direction", "branch"]

    def get_queryset(self):
        qs = (
            Invoice.objects.select_related("counterparty")
            .prefetch_related("items")
            .order_by("-created_at", "-id")
        )
        return _scoped(qs, self.request.user)

    @extend_schema(
        tags=["invoices"],
        request=InvoiceCreateSerializer,
        responses={201: InvoiceSerializer},
    )
    def post(self, request):
        s = InvoiceCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        try:
            invoice = create_invoice(
                acting_user=ActingUser.from_user(request.user),
                counterparty_id=data["counterparty_id"],
                direction=data.get("direction"),
                branch_id=data.get("branch_id"),
                items=data.get("items"),
                total_amount=data.get("total_amount"),
                paid_amount=data.get("paid_amount"),
                notes=data.get("notes", ""),
            )
        except InvoicePermissionError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)
        except InvoiceError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


class InvoiceDetailView(GenericAPIView):
    permission_classes = [IsAuthenticated, IsStaff]
    serializer_class = InvoiceSerializer

    @extend_schema(tags=["invoices"], responses=InvoiceSerializer)
    def get(self, request, invoice_id):
        qs = _scoped(Invoice.objects.prefetch_related("items"), request.user)
        invoice = get_object_or_404(qs, id=invoice_id)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_200_OK)
