from decimal import Decimal
from unittest import mock

from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from invoices.models import Invoice, InvoiceItem
from invoices.services import invoice_service
from invoices.services.invoice_service import (
    InvoiceError,
    InvoicePermissionError,
    create_invoice,
)
from payments.exceptions import PaymentWriteError
from payments.models import Payment
from payments.tests.factories import (
    acting,
    make_branch,
    make_customer,
    make_invoice,
    make_supplier,
    make_user,
)

LINES = [
    {"description": "Tomatoes", "unit": "tray", "quantity": "4", "unit_price": "12.50"},
    {"description": "Onions", "unit": "kg", "quantity": "2.5", "unit_price": "3.00"},
]


class InvoiceModelTests(TestCase):
    def setUp(self):
        self.branch = make_branch()
        self.customer = make_customer()

    def test_financial_fields_are_immutable(self):
        invoice = make_invoice(self.customer, self.branch, "100.00")

        invoice.paid_amount = Decimal("50.00")
        with self.assertRaises(ValueError):
            invoice.save()

    def test_notes_can_change(self):
        invoice = make_invoice(self.customer, self.branch, "100.00")
        invoice.notes = "delivered to the back gate"
        invoice.save()
        self.assertEqual(Invoice.objects.get(id=invoice.id).notes, "delivered to the back gate")

    def test_balance_is_derived(self):
        invoice = make_invoice(self.customer, self.branch, "100.00", paid="40.00")
        self.assertEqual(invoice.balance, Decimal("60.00"))
        annotated = Invoice.objects.with_balance().get(id=invoice.id)
        self.assertEqual(annotated.outstanding, Decimal("60.00"))


class CreateInvoiceTests(TestCase):
    """
    GUARANTEES:
    - Header, items and initial payment land together or not at all
    - Staff invoice only in their branch
    - Purchase invoices are admin-only
    """

    def setUp(self):
        self.branch = make_branch()
        self.other_branch = make_branch("Bodija")
        self.admin = make_user("admin@example.com", "admin")
        self.salesman = make_user("sales@example.com", "salesman", branch=self.branch)
        self.customer = make_customer()
        self.supplier = make_supplier()

    def test_total_is_sum_of_lines(self):
        invoice = create_invoice(
            acting_user=acting(self.salesman),
            counterparty_id=self.customer.id,
            items=LINES,
        )
        self.assertEqual(invoice.total_amount, Decimal("57.50"))
        self.assertEqual(invoice.direction, "sale")
        self.assertEqual(invoice.branch_id, self.branch.id)
        self.assertEqual(invoice.items.count(), 2)

    def test_initial_payment_creates_payment_row(self):
        invoice = create_invoice(
            acting_user=acting(self.salesman),
            counterparty_id=self.customer.id,
            items=LINES,
            paid_amount="20.00",
        )
        self.assertEqual(invoice.paid_amount, Decimal("20.00"))
        payment = Payment.objects.get(invoice=invoice)
        self.assertEqual(payment.amount, Decimal("20.00"))
        self.assertEqual(payment.branch_id, self.branch.id)

    def test_failed_initial_payment_rolls_back_invoice(self):
        with mock.patch.object(
            invoice_service,
            "record_invoice_payment",
            side_effect=PaymentWriteError("disk full"),
        ):
            with self.assertRaises(InvoiceError):
                create_invoice(
                    acting_user=acting(self.salesman),
                    counterparty_id=self.customer.id,
                    items=LINES,
                    paid_amount="20.00",
                )
        self.assertFalse(Invoice.objects.exists())
        self.assertFalse(InvoiceItem.objects.exists())

    def test_paid_above_total_rejected(self):
        with self.assertRaises(InvoiceError):
            create_invoice(
                acting_user=acting(self.salesman),
                counterparty_id=self.customer.id,
                total_amount="10.00",
                paid_amount="10.01",
            )

    def test_staff_cannot_invoice_for_other_branch(self):
        with self.assertRaises(InvoicePermissionError):
            create_invoice(
                acting_user=acting(self.salesman),
                counterparty_id=self.customer.id,
                branch_id=self.other_branch.id,
                total_amount="10.00",
            )

    def test_purchase_invoices_are_admin_only(self):
        with self.assertRaises(InvoicePermissionError):
            create_invoice(
                acting_user=acting(self.salesman),
                counterparty_id=self.supplier.id,
                total_amount="10.00",
            )

        invoice = create_invoice(
            acting_user=acting(self.admin),
            counterparty_id=self.supplier.id,
            branch_id=self.branch.id,
            total_amount="10.00",
        )
        self.assertEqual(invoice.direction, "purchase")

    def test_direction_must_match_counterparty(self):
        with self.assertRaises(InvoiceError):
            create_invoice(
                acting_user=acting(self.admin),
                counterparty_id=self.customer.id,
                direction="purchase",
                branch_id=self.branch.id,
                total_amount="10.00",
            )

    def test_admin_must_pick_branch(self):
        with self.assertRaises(InvoiceError):
            create_invoice(
                acting_user=acting(self.admin),
                counterparty_id=self.customer.id,
                total_amount="10.00",
            )

    def test_bad_line_rolls_back_header(self):
        lines = LINES + [{"description": "Pepper", "quantity": "0", "unit_price": "1.00"}]
        with self.assertRaises(InvoiceError):
            create_invoice(
                acting_user=acting(self.salesman),
                counterparty_id=self.customer.id,
                items=lines,
            )
        self.assertFalse(Invoice.objects.exists())


class InvoiceApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.branch = make_branch()
        self.other_branch = make_branch("Bodija")
        self.salesman = make_user("sales@example.com", "salesman", branch=self.branch)
        self.customer = make_customer()
        self.client.force_authenticate(self.salesman)

    def test_create_invoice(self):
        res = self.client.post(
            "/api/invoices/",
            {"counterparty_id": str(self.customer.id), "items": LINES, "paid_amount": "7.50"},
            format="json",
        )

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(res.data["total_amount"], "57.50")
        self.assertEqual(res.data["balance"], "50.00")
        self.assertEqual(len(res.data["items"]), 2)

    def test_list_is_branch_scoped(self):
        make_invoice(self.customer, self.branch, "10.00")
        make_invoice(self.customer, self.other_branch, "20.00")

        res = self.client.get("/api/invoices/")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["results"][0]["total_amount"], "10.00")

    def test_other_branch_invoice_is_hidden(self):
        invoice = make_invoice(self.customer, self.other_branch, "20.00")
        res = self.client.get(f"/api/invoices/{invoice.id}/")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

    def test_purchase_invoice_forbidden_for_salesman(self):
        supplier = make_supplier()
        res = self.client.post(
            "/api/invoices/",
            {"counterparty_id": str(supplier.id), "total_amount": "10.00"},
            format="json",
        )
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
