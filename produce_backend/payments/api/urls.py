# payments/api/urls.py

from django.urls import path

from payments.api.views import (
    CounterpartyLedgerView,
    OutstandingSummaryView,
    PaymentListCreateView,
    PaymentPreviewView,
    PaymentRunDetailView,
    PaymentRunResumeView,
    UnpaidInvoicesView,
)

urlpatterns = [
    path("", PaymentListCreateView.as_view(), name="payments"),
    path("preview/", PaymentPreviewView.as_view(), name="payment-preview"),
    path("summary/", OutstandingSummaryView.as_view(), name="payment-summary"),
    path(
        "counterparties/<uuid:counterparty_id>/unpaid/",
        UnpaidInvoicesView.as_view(),
        name="counterparty-unpaid-invoices",
    ),
    path(
        "counterparties/<uuid:counterparty_id>/ledger/",
        CounterpartyLedgerView.as_view(),
        name="counterparty-ledger",
    ),
    path("runs/<uuid:run_id>/", PaymentRunDetailView.as_view(), name="payment-run"),
    path(
        "runs/<uuid:run_id>/resume/",
        PaymentRunResumeView.as_view(),
        name="payment-run-resume",
    ),
]
