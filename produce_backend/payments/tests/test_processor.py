# payments/tests/test_processor.py

from decimal import Decimal
from unittest import mock

from django.core.cache import cache
from django.db import DatabaseError
from django.test import TestCase, override_settings

from invoices.models import Invoice
from payments.allocation import Allocation
from payments.exceptions import (
    NothingToPayError,
    OverpaymentError,
    PartialWriteError,
    PaymentAuthorizationError,
    PaymentValidationError,
    PaymentWriteError,
)
from payments.models import Payment, PaymentRun
from payments.services import processor
from payments.services.invoice_query import (
    balance_cache_key,
    cached_outstanding_balance,
    outstanding_balance,
)
from payments.services.processor import (
    StaleAllocationError,
    process_payment,
    record_invoice_payment,
    resume_payment_run,
)
from payments.tests.factories import (
    acting,
    days_ago,
    make_branch,
    make_customer,
    make_invoice,
    make_supplier,
    make_user,
)


def _fail_on_call(n, exc=None):
    """Delegate to the real write primitive, raise on the n-th call (1-based)."""
    real = processor._apply_allocation
    calls = {"count": 0}

    def side_effect(**kwargs):
        calls["count"] += 1
        if calls["count"] == n:
            raise exc or DatabaseError("connection lost")
        return real(**kwargs)

    return side_effect


class ProcessorTestBase(TestCase):
    def setUp(self):
        cache.clear()
        self.branch = make_branch()
        self.admin = make_user("admin@example.com", "admin")
        self.manager = make_user("manager@example.com", "manager", branch=self.branch)
        self.salesman = make_user("sales@example.com", "salesman", branch=self.branch)

        self.customer = make_customer()
        self.older = make_invoice(self.customer, self.branch, "100.00", created_at=days_ago(5))
        self.newer = make_invoice(self.customer, self.branch, "50.00", created_at=days_ago(2))

    def _pay(self, amount, user=None, **kwargs):
        return process_payment(
            counterparty_id=self.customer.id,
            direction="sale",
            amount=amount,
            acting_user=acting(user or self.manager),
            **kwargs,
        )

    def _paid(self, invoice):
        return Invoice.objects.get(id=invoice.id).paid_amount


class ProcessPaymentTests(ProcessorTestBase):
    """
    GUARANTEES:
    - Oldest invoice is paid first
    - One Payment row per invoice touched, branch inherited from the invoice
    - Rejected requests leave no trace
    """

    def test_fifo_payment_updates_invoices_oldest_first(self):
        outcome = self._pay("120.00")

        self.assertEqual(self._paid(self.older), Decimal("100.00"))
        self.assertEqual(self._paid(self.newer), Decimal("20.00"))
        self.assertEqual(outcome.updated_invoice_ids, [str(self.older.id), str(self.newer.id)])
        self.assertEqual(len(outcome.payment_ids), 2)

        payments = list(Payment.objects.order_by("amount"))
        self.assertEqual([p.amount for p in payments], [Decimal("20.00"), Decimal("100.00")])
        for p in payments:
            self.assertEqual(p.branch_id, self.branch.id)
            self.assertEqual(p.direction_tag, Payment.TAG_CREDIT)
            self.assertEqual(str(p.run_id), outcome.run_id)
            self.assertEqual(p.created_by_id, self.manager.id)

        run = PaymentRun.objects.get(id=outcome.run_id)
        self.assertEqual(run.status, PaymentRun.STATUS_COMPLETED)
        self.assertEqual(run.amount_requested, Decimal("120.00"))

    def test_exact_settlement_leaves_zero_outstanding(self):
        self._pay("150.00")
        self.assertEqual(outstanding_balance(self.customer.id, "sale"), Decimal("0.00"))
        self.assertTrue(Invoice.objects.get(id=self.newer.id).is_settled)

    def test_purchase_payments_are_debits(self):
        supplier = make_supplier()
        invoice = make_invoice(supplier, self.branch, "80.00", created_at=days_ago(1))

        process_payment(
            counterparty_id=supplier.id,
            direction="purchase",
            amount="80.00",
            acting_user=acting(self.admin),
        )

        payment = Payment.objects.get(invoice=invoice)
        self.assertEqual(payment.direction_tag, Payment.TAG_DEBIT)

    def test_overpayment_by_one_cent_writes_nothing(self):
        with self.assertRaises(OverpaymentError):
            self._pay("150.01")

        self.assertEqual(self._paid(self.older), Decimal("0.00"))
        self.assertEqual(self._paid(self.newer), Decimal("0.00"))
        self.assertEqual(Payment.objects.count(), 0)
        self.assertEqual(PaymentRun.objects.count(), 0)

    def test_nothing_to_pay(self):
        other = make_customer("No Debts Ltd")
        with self.assertRaises(NothingToPayError):
            process_payment(
                counterparty_id=other.id,
                direction="sale",
                amount="10.00",
                acting_user=acting(self.manager),
            )
        self.assertEqual(PaymentRun.objects.count(), 0)

    def test_invalid_amount_rejected_before_any_read(self):
        with mock.patch.object(processor, "unpaid_invoices_queryset") as unpaid:
            for amount in ("0", "-10.00"):
                with self.assertRaises(PaymentValidationError):
                    self._pay(amount)
            unpaid.assert_not_called()

    def test_invalid_direction_rejected(self):
        with self.assertRaises(PaymentValidationError):
            process_payment(
                counterparty_id=self.customer.id,
                direction="refund",
                amount="10.00",
                acting_user=acting(self.manager),
            )

    def test_unknown_counterparty_rejected(self):
        with self.assertRaises(PaymentValidationError):
            process_payment(
                counterparty_id="5d0c8c8e-9d43-4c61-9a59-000000000000",
                direction="sale",
                amount="10.00",
                acting_user=acting(self.manager),
            )

    def test_salesman_cannot_record_payments(self):
        with mock.patch.object(processor, "unpaid_invoices_queryset") as unpaid:
            with self.assertRaises(PaymentAuthorizationError):
                self._pay("10.00", user=self.salesman)
            unpaid.assert_not_called()
        self.assertEqual(Payment.objects.count(), 0)

    def test_balance_cache_invalidated_on_commit(self):
        self.assertEqual(cached_outstanding_balance(self.customer.id, "sale"), Decimal("150.00"))

        with self.captureOnCommitCallbacks(execute=True):
            self._pay("30.00")

        self.assertIsNone(cache.get(balance_cache_key(self.customer.id, "sale")))
        self.assertEqual(cached_outstanding_balance(self.customer.id, "sale"), Decimal("120.00"))


class TransactionPolicyTests(ProcessorTestBase):
    def test_atomic_mode_rolls_back_every_invoice(self):
        with mock.patch.object(processor, "_apply_allocation", side_effect=_fail_on_call(2)):
            with self.assertRaises(PaymentWriteError) as ctx:
                self._pay("120.00")

        exc = ctx.exception
        self.assertNotIsInstance(exc, PartialWriteError)
        self.assertEqual(exc.applied_invoice_ids, [])
        self.assertEqual(exc.pending_invoice_ids, [str(self.older.id), str(self.newer.id)])

        self.assertEqual(self._paid(self.older), Decimal("0.00"))
        self.assertEqual(Payment.objects.count(), 0)

        run = PaymentRun.objects.get(id=exc.run_id)
        self.assertEqual(run.status, PaymentRun.STATUS_FAILED)
        self.assertIn("connection lost", run.error)

    def _applied_log_calls(self, info):
        return [c for c in info.call_args_list if c.args[:1] == ("Invoice payment applied",)]

    def test_applied_writes_are_logged_after_commit(self):
        with mock.patch.object(processor.logger, "info") as info:
            with self.captureOnCommitCallbacks(execute=True):
                self._pay("120.00")
                self.assertEqual(self._applied_log_calls(info), [])

        self.assertEqual(len(self._applied_log_calls(info)), 2)

    def test_rolled_back_writes_are_never_logged_as_applied(self):
        with mock.patch.object(processor.logger, "info") as info:
            with self.captureOnCommitCallbacks(execute=True):
                with mock.patch.object(
                    processor, "_apply_allocation", side_effect=_fail_on_call(2)
                ):
                    with self.assertRaises(PaymentWriteError):
                        self._pay("120.00")

        self.assertEqual(self._applied_log_calls(info), [])

    @override_settings(PAYMENTS_ATOMIC_ALLOCATION=False)
    def test_sequential_mode_reports_partial_write(self):
        with mock.patch.object(processor, "_apply_allocation", side_effect=_fail_on_call(2)):
            with self.assertLogs("payments", level="ERROR"):
                with self.assertRaises(PartialWriteError) as ctx:
                    self._pay("120.00")

        exc = ctx.exception
        self.assertEqual(exc.applied_invoice_ids, [str(self.older.id)])
        self.assertEqual(exc.pending_invoice_ids, [str(self.newer.id)])
        self.assertIn("Check the counterparty ledger", str(exc))

        self.assertEqual(self._paid(self.older), Decimal("100.00"))
        self.assertEqual(self._paid(self.newer), Decimal("0.00"))

        run = PaymentRun.objects.get(id=exc.run_id)
        self.assertEqual(run.status, PaymentRun.STATUS_PARTIAL)
        self.assertEqual(run.applied_invoice_ids, [str(self.older.id)])

    @override_settings(PAYMENTS_ATOMIC_ALLOCATION=False)
    def test_sequential_mode_first_failure_is_not_partial(self):
        with mock.patch.object(processor, "_apply_allocation", side_effect=_fail_on_call(1)):
            with self.assertRaises(PaymentWriteError) as ctx:
                self._pay("120.00")

        self.assertNotIsInstance(ctx.exception, PartialWriteError)
        self.assertEqual(Payment.objects.count(), 0)


class ResumeRunTests(ProcessorTestBase):
    def _partial_run(self):
        with override_settings(PAYMENTS_ATOMIC_ALLOCATION=False):
            with mock.patch.object(processor, "_apply_allocation", side_effect=_fail_on_call(2)):
                with self.assertRaises(PartialWriteError) as ctx:
                    self._pay("120.00")
        return PaymentRun.objects.get(id=ctx.exception.run_id)

    def test_resume_applies_only_the_remainder(self):
        run = self._partial_run()

        outcome = resume_payment_run(run_id=run.id, acting_user=acting(self.manager))

        self.assertEqual(outcome.amount, Decimal("20.00"))
        self.assertEqual(self._paid(self.older), Decimal("100.00"))
        self.assertEqual(self._paid(self.newer), Decimal("20.00"))

        run.refresh_from_db()
        self.assertEqual(run.status, PaymentRun.STATUS_RESUMED)

        child = PaymentRun.objects.get(id=outcome.run_id)
        self.assertEqual(child.parent_id, run.id)
        self.assertEqual(child.amount_applied_in_chain(), Decimal("120.00"))

    def test_resumed_run_cannot_be_resumed_twice(self):
        run = self._partial_run()
        resume_payment_run(run_id=run.id, acting_user=acting(self.manager))

        with self.assertRaises(PaymentValidationError):
            resume_payment_run(run_id=run.id, acting_user=acting(self.manager))

    def test_completed_run_is_not_resumable(self):
        outcome = self._pay("10.00")
        with self.assertRaises(PaymentValidationError):
            resume_payment_run(run_id=outcome.run_id, acting_user=acting(self.manager))

    def test_resume_requires_payment_capability(self):
        run = self._partial_run()
        with self.assertRaises(PaymentAuthorizationError):
            resume_payment_run(run_id=run.id, acting_user=acting(self.salesman))

    def test_unauthorized_caller_learns_nothing_about_unknown_runs(self):
        with self.assertRaises(PaymentAuthorizationError):
            resume_payment_run(
                run_id="00000000-0000-0000-0000-000000000000",
                acting_user=acting(self.salesman),
            )

    def test_resume_rederives_from_current_state(self):
        run = self._partial_run()
        # someone settled the newer invoice by hand in the meantime
        record_invoice_payment(
            invoice_id=self.newer.id, amount="50.00", acting_user=acting(self.manager)
        )

        with self.assertRaises(NothingToPayError):
            resume_payment_run(run_id=run.id, acting_user=acting(self.manager))

        run.refresh_from_db()
        self.assertEqual(run.status, PaymentRun.STATUS_PARTIAL)


class SingleInvoiceWriteTests(ProcessorTestBase):
    def test_record_invoice_payment(self):
        outcome = record_invoice_payment(
            invoice_id=self.newer.id, amount="30.00", acting_user=acting(self.manager)
        )
        self.assertEqual(outcome.updated_invoice_ids, [str(self.newer.id)])
        self.assertEqual(self._paid(self.newer), Decimal("30.00"))
        # the older invoice is untouched
        self.assertEqual(self._paid(self.older), Decimal("0.00"))

    def test_record_invoice_payment_refuses_overpayment(self):
        with self.assertRaises(OverpaymentError):
            record_invoice_payment(
                invoice_id=self.newer.id, amount="50.01", acting_user=acting(self.manager)
            )

    def test_stale_plan_is_refused(self):
        record_invoice_payment(
            invoice_id=self.older.id, amount="30.00", acting_user=acting(self.manager)
        )
        stale = Allocation(
            invoice_id=str(self.older.id),
            created_at=self.older.created_at,
            original_balance=Decimal("100.00"),
            amount_applied=Decimal("100.00"),
            remaining_balance=Decimal("0.00"),
        )

        with self.assertRaises(StaleAllocationError):
            processor._apply_allocation(
                allocation=stale,
                counterparty_id=self.customer.id,
                direction="sale",
                run=None,
                acting_user=acting(self.manager),
            )
        self.assertEqual(self._paid(self.older), Decimal("30.00"))

    def test_payments_are_immutable(self):
        outcome = self._pay("10.00")
        payment = Payment.objects.get(id=outcome.payment_ids[0])

        payment.amount = Decimal("1.00")
        with self.assertRaises(ValueError):
            payment.save()
        with self.assertRaises(ValueError):
            payment.delete()
