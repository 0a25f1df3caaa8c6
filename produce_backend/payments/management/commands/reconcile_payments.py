# payments/management/commands/reconcile_payments.py

from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand
from django.db.models import DecimalField, Sum
from django.db.models.functions import Coalesce

from entities.models import Counterparty
from invoices.models import Invoice
from payments.models import PaymentRun


class Command(BaseCommand):
    help = (
        "Reconcile invoice paid_amount against recorded payments and list "
        "payment runs that still need to be resumed."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--counterparty",
            dest="counterparty_id",
            help="Limit the check to one counterparty id (optional)",
        )
        parser.add_argument(
            "--strict",
            action="store_true",
            help="Fail (non-zero exit) if any problem is found.",
        )

    def handle(self, *args, **options):
        counterparty_id = options.get("counterparty_id")
        strict = bool(options.get("strict"))

        invoices = Invoice.objects.all()
        runs = PaymentRun.objects.filter(status__in=PaymentRun.RESUMABLE_STATUSES)

        if counterparty_id:
            try:
                counterparty = Counterparty.objects.get(id=counterparty_id)
            except (Counterparty.DoesNotExist, ValueError, ValidationError):
                self.stderr.write(self.style.ERROR(f"Unknown counterparty: {counterparty_id}"))
                return self._exit(strict)
            invoices = invoices.filter(counterparty=counterparty)
            runs = runs.filter(counterparty=counterparty)

        self.stdout.write(self.style.MIGRATE_HEADING("Payment reconciliation"))
        self.stdout.write(f"Invoices checked: {invoices.count()}")
        self.stdout.write("")

        errors = 0

        # -----------------------------
        # 1) paid_amount == sum(payments)
        # -----------------------------
        mismatched = []
        rows = invoices.annotate(
            payments_total=Coalesce(
                Sum("payments__amount"),
                Decimal("0.00"),
                output_field=DecimalField(max_digits=14, decimal_places=2),
            )
        ).order_by("created_at", "id")

        for inv in rows:
            paid = Decimal(str(inv.paid_amount))
            recorded = Decimal(str(inv.payments_total))
            if paid != recorded:
                mismatched.append((str(inv.id), paid, recorded))

        if mismatched:
            errors += len(mismatched)
            self.stderr.write(
                self.style.ERROR(f"[FAIL] paid_amount differs from payments: {len(mismatched)}")
            )
            for inv_id, paid, recorded in mismatched[:10]:
                self.stderr.write(f"  invoice_id={inv_id} paid_amount={paid} payments={recorded}")
        else:
            self.stdout.write(self.style.SUCCESS("[OK] paid_amount matches recorded payments"))

        # -----------------------------
        # 2) 0 <= paid_amount <= total_amount
        # -----------------------------
        out_of_range = [
            str(i)
            for i in invoices.filter(paid_amount__lt=Decimal("0.00")).values_list("id", flat=True)
        ]
        out_of_range += [
            str(inv.id) for inv in invoices.only("id", "paid_amount", "total_amount")
            if inv.paid_amount > inv.total_amount
        ]

        if out_of_range:
            errors += len(out_of_range)
            self.stderr.write(
                self.style.ERROR(f"[FAIL] paid_amount out of range: {len(out_of_range)}")
            )
            self.stderr.write("  Example IDs: " + ", ".join(out_of_range[:10]))
        else:
            self.stdout.write(self.style.SUCCESS("[OK] paid_amount within [0, total_amount]"))

        # -----------------------------
        # 3) Unfinished payment runs
        # -----------------------------
        unfinished = []
        for run in runs.order_by("created_at"):
            remaining = run.root().amount_requested - run.amount_applied_in_chain()
            if remaining > Decimal("0.00"):
                unfinished.append((run, remaining))

        if unfinished:
            errors += len(unfinished)
            self.stderr.write(
                self.style.ERROR(f"[FAIL] Payment runs awaiting resume: {len(unfinished)}")
            )
            for run, remaining in unfinished[:10]:
                self.stderr.write(
                    f"  run_id={run.id} status={run.status} remaining={remaining} "
                    f"pending_invoices={len(run.pending_invoice_ids)}"
                )
        else:
            self.stdout.write(self.style.SUCCESS("[OK] No partial or failed payment runs"))

        self.stdout.write("")
        if errors == 0:
            self.stdout.write(self.style.SUCCESS("RECONCILIATION PASSED"))
        else:
            self.stderr.write(self.style.ERROR(f"RECONCILIATION FOUND ISSUES: {errors} problem(s)"))

        return self._exit(strict and errors > 0)

    def _exit(self, fail: bool):
        if fail:
            raise SystemExit(1)
        return None
