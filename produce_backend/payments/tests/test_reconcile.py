# payments/tests/test_reconcile.py

from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings

from payments.exceptions import PartialWriteError
from payments.services import processor
from payments.services.processor import process_payment
from payments.tests.factories import (
    acting,
    days_ago,
    make_branch,
    make_customer,
    make_invoice,
    make_user,
)


class ReconcilePaymentsCommandTests(TestCase):
    def setUp(self):
        self.branch = make_branch()
        self.manager = make_user("manager@example.com", "manager", branch=self.branch)
        self.customer = make_customer()
        make_invoice(self.customer, self.branch, "100.00", created_at=days_ago(5))
        make_invoice(self.customer, self.branch, "50.00", created_at=days_ago(2))

    def _run(self, *args):
        out, err = StringIO(), StringIO()
        call_command("reconcile_payments", *args, stdout=out, stderr=err)
        return out.getvalue(), err.getvalue()

    def test_clean_books_pass(self):
        process_payment(
            counterparty_id=self.customer.id,
            direction="sale",
            amount="120.00",
            acting_user=acting(self.manager),
        )

        out, err = self._run("--strict")

        self.assertIn("RECONCILIATION PASSED", out)
        self.assertEqual(err, "")

    def test_paid_amount_without_payments_is_reported(self):
        stray = make_invoice(self.customer, self.branch, "10.00", paid="10.00")

        out, err = self._run()
        self.assertIn("paid_amount differs from payments", err)
        self.assertIn(str(stray.id), err)

        with self.assertRaises(SystemExit):
            self._run("--strict")

    @override_settings(PAYMENTS_ATOMIC_ALLOCATION=False)
    def test_partial_run_is_listed(self):
        real = processor._apply_allocation
        calls = {"count": 0}

        def side_effect(**kwargs):
            calls["count"] += 1
            if calls["count"] == 2:
                raise DatabaseError("connection lost")
            return real(**kwargs)

        with mock.patch.object(processor, "_apply_allocation", side_effect=side_effect):
            with self.assertRaises(PartialWriteError) as ctx:
                process_payment(
                    counterparty_id=self.customer.id,
                    direction="sale",
                    amount="120.00",
                    acting_user=acting(self.manager),
                )

        out, err = self._run("--counterparty", str(self.customer.id))

        self.assertIn("Payment runs awaiting resume: 1", err)
        self.assertIn(ctx.exception.run_id, err)
        self.assertIn("remaining=20.00", err)

    def test_unknown_counterparty(self):
        out, err = self._run("--counterparty", "not-a-uuid")
        self.assertIn("Unknown counterparty", err)
