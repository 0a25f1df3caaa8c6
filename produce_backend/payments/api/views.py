# payments/api/views.py

"""
PAYMENTS & LEDGER API

Views are thin: parse input, build ActingUser from request.user, call a
service, map domain errors to HTTP.

Error mapping:
- PaymentValidationError / NothingToPayError / OverpaymentError -> 400
- PaymentAuthorizationError                                     -> 403
- PartialWriteError                                             -> 409
- PaymentWriteError                                             -> 500
- LedgerUnavailableError                                        -> 503
"""

from __future__ import annotations

from django.shortcuts import get_object_or_404
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import generics, status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from payments.api.serializers import (
    PaymentPreviewRequestSerializer,
    PaymentRequestSerializer,
    PaymentRunSerializer,
    PaymentSerializer,
    UnpaidInvoiceSerializer,
)
from payments.exceptions import (
    LedgerUnavailableError,
    NothingToPayError,
    OverpaymentError,
    PartialWriteError,
    PaymentAuthorizationError,
    PaymentError,
    PaymentValidationError,
    PaymentWriteError,
)
from payments.models import Payment, PaymentRun
from payments.services.invoice_query import list_unpaid_invoices, outstanding_totals
from payments.services.ledger import build_ledger, ledger_summary
from payments.services.preview import form_breakdown, preview_allocation
from payments.services.processor import process_payment, resume_payment_run
from permissions.roles import CAP_LEDGER_VIEW, CAP_PAYMENTS_RECORD, ActingUser, HasCapability

# most specific first
_ERROR_STATUS = (
    (PartialWriteError, status.HTTP_409_CONFLICT),
    (PaymentWriteError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (PaymentAuthorizationError, status.HTTP_403_FORBIDDEN),
    (LedgerUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (OverpaymentError, status.HTTP_400_BAD_REQUEST),
    (NothingToPayError, status.HTTP_400_BAD_REQUEST),
    (PaymentValidationError, status.HTTP_400_BAD_REQUEST),
)


def payment_error_response(exc: PaymentError) -> Response:
    for cls, code in _ERROR_STATUS:
        if isinstance(exc, cls):
            return Response(exc.as_dict(), status=code)
    return Response(exc.as_dict(), status=status.HTTP_400_BAD_REQUEST)


DIRECTION_PARAM = OpenApiParameter(
    name="direction",
    type=str,
    enum=["sale", "purchase"],
    required=False,
)


class UnpaidInvoicesView(GenericAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = UnpaidInvoiceSerializer

    @extend_schema(
        tags=["payments"],
        parameters=[
            DIRECTION_PARAM,
            OpenApiParameter(name="amount", type=str, required=False),
        ],
    )
    def get(self, request, counterparty_id):
        acting_user = ActingUser.from_user(request.user)
        direction = request.query_params.get("direction", "")
        amount = request.query_params.get("amount")

        try:
            invoices = list_unpaid_invoices(
                counterparty_id=counterparty_id,
                direction=direction,
                acting_user=acting_user,
            )
            payload = {
                "counterparty_id": str(counterparty_id),
                "direction": direction,
                "invoices": UnpaidInvoiceSerializer(invoices, many=True).data,
            }
            if amount is not None:
                payload["breakdown"] = form_breakdown(
                    counterparty_id=counterparty_id,
                    direction=direction,
                    amount=amount,
                    acting_user=acting_user,
                )
        except PaymentError as exc:
            return payment_error_response(exc)

        return Response(payload, status=status.HTTP_200_OK)


class PaymentPreviewView(GenericAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = PaymentPreviewRequestSerializer

    @extend_schema(tags=["payments"], request=PaymentPreviewRequestSerializer)
    def post(self, request):
        s = self.get_serializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        try:
            result = preview_allocation(
                counterparty_id=data["counterparty_id"],
                direction=data["direction"],
                amount=data["amount"],
                acting_user=ActingUser.from_user(request.user),
            )
        except PaymentError as exc:
            return payment_error_response(exc)

        return Response(result.as_dict(), status=status.HTTP_200_OK)


class PaymentListCreateView(generics.ListAPIView):
    """
    GET: recorded payments (filter by counterparty / direction_tag / invoice / run).
    POST: pay an amount against a counterparty's unpaid invoices, oldest first.
    """

    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_LEDGER_VIEW
    serializer_class = PaymentSerializer
    filterset_fields = ["counterparty", "direction_tag", "invoice", "branch", "run"]

    def get_queryset(self):
        qs = Payment.objects.select_related("counterparty", "branch").order_by(
            "-created_at", "-id"
        )
        acting_user = ActingUser.from_user(self.request.user)
        if not acting_user.is_privileged:
            qs = qs.filter(branch_id=acting_user.branch_id)
        return qs

    def get_permissions(self):
        # recording is authorized by the processor itself
        if self.request.method == "POST":
            return [IsAuthenticated()]
        return super().get_permissions()

    @extend_schema(
        tags=["payments"],
        request=PaymentRequestSerializer,
        responses={201: OpenApiTypes.OBJECT},
    )
    def post(self, request):
        s = PaymentRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        try:
            outcome = process_payment(
                counterparty_id=data["counterparty_id"],
                direction=data["direction"],
                amount=data["amount"],
                acting_user=ActingUser.from_user(request.user),
                note=data.get("note", ""),
            )
        except PaymentError as exc:
            return payment_error_response(exc)

        return Response(outcome.as_dict(), status=status.HTTP_201_CREATED)


class CounterpartyLedgerView(GenericAPIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["payments"], parameters=[DIRECTION_PARAM])
    def get(self, request, counterparty_id):
        # no direction -> the counterparty's natural side
        direction = request.query_params.get("direction") or None

        try:
            entries = build_ledger(
                counterparty_id=counterparty_id,
                direction=direction,
                acting_user=ActingUser.from_user(request.user),
            )
        except PaymentError as exc:
            return payment_error_response(exc)

        return Response(
            {
                "counterparty_id": str(counterparty_id),
                "direction": entries[0].direction if entries else direction,
                "summary": ledger_summary(entries),
                "entries": [e.as_dict() for e in entries],
            },
            status=status.HTTP_200_OK,
        )


class PaymentRunDetailView(GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_PAYMENTS_RECORD
    serializer_class = PaymentRunSerializer

    @extend_schema(tags=["payments"], responses=PaymentRunSerializer)
    def get(self, request, run_id):
        run = get_object_or_404(PaymentRun, id=run_id)
        return Response(self.get_serializer(run).data, status=status.HTTP_200_OK)


class PaymentRunResumeView(GenericAPIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["payments"], request=None, responses={201: OpenApiTypes.OBJECT})
    def post(self, request, run_id):
        try:
            outcome = resume_payment_run(
                run_id=run_id,
                acting_user=ActingUser.from_user(request.user),
            )
        except PaymentError as exc:
            return payment_error_response(exc)

        return Response(outcome.as_dict(), status=status.HTTP_201_CREATED)


class OutstandingSummaryView(GenericAPIView):
    """Receivable / payable totals. Non-admin staff see their branch only."""

    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_LEDGER_VIEW

    @extend_schema(tags=["payments"], responses={200: OpenApiTypes.OBJECT})
    def get(self, request):
        acting_user = ActingUser.from_user(request.user)
        if acting_user.is_privileged:
            totals = outstanding_totals()
        elif acting_user.branch_id:
            totals = outstanding_totals(branch_id=acting_user.branch_id)
        else:
            return Response(
                {"detail": "No branch assigned", "code": "not_authorized"},
                status=status.HTTP_403_FORBIDDEN,
            )

        return Response(
            {
                "branch_id": None if acting_user.is_privileged else acting_user.branch_id,
                "receivable": str(totals["receivable"]),
                "payable": str(totals["payable"]),
            },
            status=status.HTTP_200_OK,
        )
