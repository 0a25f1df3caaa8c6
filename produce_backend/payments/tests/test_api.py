# payments/tests/test_api.py

from decimal import Decimal
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from invoices.models import Invoice
from payments.models import Payment, PaymentRun
from payments.services import processor
from payments.tests.factories import (
    days_ago,
    make_branch,
    make_customer,
    make_invoice,
    make_user,
)

PAYMENTS_URL = "/api/payments/"


class PaymentApiTests(TestCase):
    """
    GUARANTEES:
    - Domain errors map to stable HTTP codes
    - Bodies carry what the operator needs (run id, applied vs pending)
    """

    def setUp(self):
        self.client = APIClient()
        self.branch = make_branch()
        self.admin = make_user("admin@example.com", "admin")
        self.manager = make_user("manager@example.com", "manager", branch=self.branch)
        self.salesman = make_user("sales@example.com", "salesman", branch=self.branch)

        self.customer = make_customer()
        self.older = make_invoice(self.customer, self.branch, "100.00", created_at=days_ago(5))
        self.newer = make_invoice(self.customer, self.branch, "50.00", created_at=days_ago(2))

        self.client.force_authenticate(self.manager)

    def _post_payment(self, amount, **extra):
        payload = {
            "counterparty_id": str(self.customer.id),
            "direction": "sale",
            "amount": amount,
            **extra,
        }
        return self.client.post(PAYMENTS_URL, payload, format="json")

    def _fail_second_write(self):
        real = processor._apply_allocation
        calls = {"count": 0}

        def side_effect(**kwargs):
            calls["count"] += 1
            if calls["count"] == 2:
                raise DatabaseError("connection lost")
            return real(**kwargs)

        return mock.patch.object(processor, "_apply_allocation", side_effect=side_effect)

    # --------------------------------------------------
    # POST /api/payments/
    # --------------------------------------------------

    def test_process_payment_created(self):
        res = self._post_payment("120.00", note="cash at the gate")

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertTrue(res.data["success"])
        self.assertEqual(res.data["amount"], "120.00")
        self.assertEqual(len(res.data["payment_ids"]), 2)
        self.assertEqual(
            res.data["allocation"]["settled_invoice_ids"], [str(self.older.id)]
        )
        self.assertEqual(
            set(Payment.objects.values_list("note", flat=True)), {"cash at the gate"}
        )

    def test_overpayment_is_400_with_figures(self):
        res = self._post_payment("150.01")

        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["code"], "overpayment")
        self.assertEqual(res.data["total_outstanding"], "150.00")
        self.assertEqual(Payment.objects.count(), 0)

    def test_non_positive_amount_is_400(self):
        res = self._post_payment("0")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["code"], "invalid_payment")

    def test_amount_beyond_column_range_is_400(self):
        res = self._post_payment("1e30")

        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["code"], "invalid_payment")
        self.assertEqual(Payment.objects.count(), 0)
        self.assertFalse(PaymentRun.objects.exists())

    def test_sub_cent_amount_is_400(self):
        res = self._post_payment("10.005")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["code"], "invalid_payment")

    def test_nothing_to_pay_is_400(self):
        Invoice.objects.all().delete()
        res = self._post_payment("10.00")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["code"], "nothing_to_pay")

    def test_salesman_is_403(self):
        self.client.force_authenticate(self.salesman)
        res = self._post_payment("10.00")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(res.data["code"], "not_authorized")

    def test_anonymous_is_401(self):
        self.client.force_authenticate(None)
        res = self._post_payment("10.00")
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)

    @override_settings(PAYMENTS_ATOMIC_ALLOCATION=False)
    def test_partial_write_is_409(self):
        with self._fail_second_write():
            res = self._post_payment("120.00")

        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(res.data["code"], "partial_write")
        self.assertEqual(res.data["applied_invoice_ids"], [str(self.older.id)])
        self.assertEqual(res.data["pending_invoice_ids"], [str(self.newer.id)])
        self.assertIsNotNone(res.data["run_id"])

    def test_atomic_write_failure_is_500(self):
        with self._fail_second_write():
            res = self._post_payment("120.00")

        self.assertEqual(res.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(res.data["code"], "payment_write_failed")
        self.assertEqual(res.data["applied_invoice_ids"], [])

    # --------------------------------------------------
    # Runs
    # --------------------------------------------------

    @override_settings(PAYMENTS_ATOMIC_ALLOCATION=False)
    def test_run_detail_and_resume(self):
        with self._fail_second_write():
            run_id = self._post_payment("120.00").data["run_id"]

        detail = self.client.get(f"{PAYMENTS_URL}runs/{run_id}/")
        self.assertEqual(detail.status_code, status.HTTP_200_OK)
        self.assertEqual(detail.data["status"], PaymentRun.STATUS_PARTIAL)
        self.assertEqual(detail.data["amount_applied"], "100.00")
        self.assertTrue(detail.data["is_resumable"])

        res = self.client.post(f"{PAYMENTS_URL}runs/{run_id}/resume/")
        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(res.data["amount"], "20.00")

        again = self.client.post(f"{PAYMENTS_URL}runs/{run_id}/resume/")
        self.assertEqual(again.status_code, status.HTTP_400_BAD_REQUEST)

    # --------------------------------------------------
    # Reads
    # --------------------------------------------------

    def test_preview(self):
        payload = {"counterparty_id": str(self.customer.id), "direction": "sale", "amount": "120"}
        res = self.client.post(f"{PAYMENTS_URL}preview/", payload, format="json")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["total_allocated"], "120.00")
        self.assertEqual(Payment.objects.count(), 0)

    def test_unpaid_invoices_with_breakdown(self):
        url = f"{PAYMENTS_URL}counterparties/{self.customer.id}/unpaid/"
        res = self.client.get(url, {"direction": "sale", "amount": "120"})

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(
            [row["id"] for row in res.data["invoices"]],
            [str(self.older.id), str(self.newer.id)],
        )
        self.assertTrue(res.data["breakdown"]["is_valid_amount"])

    def test_huge_amounts_never_500(self):
        payload = {"counterparty_id": str(self.customer.id), "direction": "sale", "amount": "1e30"}
        res = self.client.post(f"{PAYMENTS_URL}preview/", payload, format="json")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

        url = f"{PAYMENTS_URL}counterparties/{self.customer.id}/unpaid/"
        res = self.client.get(url, {"direction": "sale", "amount": "1e30"})
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertFalse(res.data["breakdown"]["is_valid_amount"])

    def test_unpaid_invoices_bad_direction(self):
        url = f"{PAYMENTS_URL}counterparties/{self.customer.id}/unpaid/"
        res = self.client.get(url, {"direction": "sideways"})
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

    def test_ledger(self):
        self._post_payment("120.00")
        res = self.client.get(f"{PAYMENTS_URL}counterparties/{self.customer.id}/ledger/")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["direction"], "sale")
        self.assertEqual(res.data["summary"]["closing_balance"], "30.00")
        self.assertEqual(len(res.data["entries"]), 4)

    def test_ledger_unavailable_is_503(self):
        with mock.patch.object(
            Invoice.objects, "for_counterparty", side_effect=DatabaseError("down")
        ):
            res = self.client.get(f"{PAYMENTS_URL}counterparties/{self.customer.id}/ledger/")

        self.assertEqual(res.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(res.data["code"], "ledger_unavailable")

    def test_payment_list_filters_by_counterparty(self):
        self._post_payment("120.00")
        other = make_customer("Iya Basira")
        make_invoice(other, self.branch, "10.00", created_at=days_ago(1))
        self.client.post(
            PAYMENTS_URL,
            {"counterparty_id": str(other.id), "direction": "sale", "amount": "10.00"},
            format="json",
        )

        res = self.client.get(PAYMENTS_URL, {"counterparty": str(self.customer.id)})

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["count"], 2)
        amounts = sorted(Decimal(r["amount"]) for r in res.data["results"])
        self.assertEqual(amounts, [Decimal("20.00"), Decimal("100.00")])

    def test_outstanding_summary(self):
        self._post_payment("30.00")
        res = self.client.get(f"{PAYMENTS_URL}summary/")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["receivable"], "120.00")
        self.assertEqual(res.data["payable"], "0.00")
        self.assertEqual(res.data["branch_id"], str(self.branch.id))
