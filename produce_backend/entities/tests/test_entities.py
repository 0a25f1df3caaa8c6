from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from entities.models import Counterparty
from entities.services.entity_service import (
    CounterpartyError,
    CounterpartyPermissionError,
    upsert_counterparty,
)
from payments.tests.factories import (
    acting,
    days_ago,
    make_branch,
    make_customer,
    make_invoice,
    make_user,
)


class CounterpartyServiceTests(TestCase):
    """
    GUARANTEES:
    - Counter staff manage customers
    - Only admins manage suppliers
    - entity_type is frozen once invoices exist
    """

    def setUp(self):
        self.branch = make_branch()
        self.admin = make_user("admin@example.com", "admin")
        self.salesman = make_user("sales@example.com", "salesman", branch=self.branch)

    def test_salesman_creates_customer(self):
        customer = upsert_counterparty(
            acting_user=acting(self.salesman), name="  Iya Basira ", entity_type="customer"
        )
        self.assertEqual(customer.name, "Iya Basira")
        self.assertEqual(customer.natural_direction, "sale")

    def test_salesman_cannot_create_supplier(self):
        with self.assertRaises(CounterpartyPermissionError):
            upsert_counterparty(
                acting_user=acting(self.salesman), name="Jos Farms", entity_type="supplier"
            )
        self.assertFalse(Counterparty.objects.exists())

    def test_admin_creates_supplier(self):
        supplier = upsert_counterparty(
            acting_user=acting(self.admin), name="Jos Farms", entity_type="supplier"
        )
        self.assertEqual(supplier.natural_direction, "purchase")

    def test_salesman_cannot_turn_customer_into_supplier(self):
        customer = make_customer()
        with self.assertRaises(CounterpartyPermissionError):
            upsert_counterparty(
                acting_user=acting(self.salesman),
                counterparty_id=customer.id,
                entity_type="supplier",
            )

    def test_type_frozen_once_invoiced(self):
        customer = make_customer()
        make_invoice(customer, self.branch, "10.00")
        with self.assertRaises(CounterpartyError):
            upsert_counterparty(
                acting_user=acting(self.admin),
                counterparty_id=customer.id,
                entity_type="supplier",
            )

    def test_blank_name_rejected(self):
        with self.assertRaises(CounterpartyError):
            upsert_counterparty(acting_user=acting(self.admin), name="   ")


class CounterpartyApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.branch = make_branch()
        self.manager = make_user("manager@example.com", "manager", branch=self.branch)
        self.client.force_authenticate(self.manager)

    def test_detail_includes_outstanding_balance(self):
        customer = make_customer()
        make_invoice(customer, self.branch, "100.00", created_at=days_ago(2))
        make_invoice(customer, self.branch, "25.50", created_at=days_ago(1), paid="5.50")

        res = self.client.get(f"/api/entities/{customer.id}/")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(res.data["outstanding_balance"]), Decimal("120.00"))

    def test_create_and_filter(self):
        res = self.client.post(
            "/api/entities/", {"name": "Mama Ngozi", "entity_type": "customer"}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_201_CREATED)

        res = self.client.post(
            "/api/entities/", {"name": "Jos Farms", "entity_type": "supplier"}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

        res = self.client.get("/api/entities/", {"entity_type": "customer", "q": "ngozi"})
        self.assertEqual(res.data["count"], 1)

    def test_patch_updates_phone(self):
        customer = make_customer()
        res = self.client.patch(
            f"/api/entities/{customer.id}/", {"phone": "0803 000 0000"}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["phone"], "0803 000 0000")
