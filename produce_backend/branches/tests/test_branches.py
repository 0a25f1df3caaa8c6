from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from branches.models import Branch

User = get_user_model()


class BranchModelTests(TestCase):
    def test_only_one_admin_branch(self):
        Branch.objects.create(name="Head Office", is_admin_branch=True)
        with self.assertRaises(IntegrityError):
            Branch.objects.create(name="Second HQ", is_admin_branch=True)

    def test_str_includes_code(self):
        self.assertEqual(str(Branch(name="Mile 12", code="M12")), "Mile 12 (M12)")


class BranchApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.branch = Branch.objects.create(name="Oyingbo")
        self.admin = User.objects.create_user(
            email="admin@example.com", password="pass", role="admin", is_approved=True
        )
        self.manager = User.objects.create_user(
            email="manager@example.com",
            password="pass",
            role="manager",
            branch=self.branch,
            is_approved=True,
        )

    def test_staff_can_list(self):
        self.client.force_authenticate(self.manager)
        res = self.client.get("/api/branches/")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["results"][0]["name"], "Oyingbo")

    def test_only_admin_can_create(self):
        self.client.force_authenticate(self.manager)
        res = self.client.post("/api/branches/", {"name": "Bodija"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        res = self.client.post("/api/branches/", {"name": "Bodija"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Branch.objects.filter(name="Bodija").exists())
