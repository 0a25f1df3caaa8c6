# invoices/api/urls.py

from django.urls import path

from invoices.api.views import InvoiceDetailView, InvoiceListCreateView

urlpatterns = [
    path("", InvoiceListCreateView.as_view(), name="invoices"),
    path("<uuid:invoice_id>/", InvoiceDetailView.as_view(), name="invoice-detail"),
]
