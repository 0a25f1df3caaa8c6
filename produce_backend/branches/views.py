# branches/views.py

"""
BRANCH VIEWSET

- Any staff member may list branches (branch pickers, ledger filters)
- Only holders of branches.manage may create / edit
"""

from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated

from branches.models import Branch
from branches.serializers import BranchSerializer
from permissions.roles import CAP_BRANCHES_MANAGE, HasCapability, IsStaff


class BranchViewSet(viewsets.ModelViewSet):
    queryset = Branch.objects.all().order_by("name")
    serializer_class = BranchSerializer
    required_capability = CAP_BRANCHES_MANAGE

    def get_permissions(self):
        if self.action in ("list", "retrieve"):
            return [IsAuthenticated(), IsStaff()]
        return [IsAuthenticated(), HasCapability()]
