# users/views/me.py

from drf_spectacular.utils import extend_schema
from rest_framework import serializers
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from permissions.roles import ActingUser, effective_capabilities_for


class MeSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    email = serializers.EmailField()
    full_name = serializers.CharField()
    role = serializers.CharField()
    branch_id = serializers.UUIDField(allow_null=True)
    branch_name = serializers.CharField(allow_null=True)
    is_approved = serializers.BooleanField()
    # admins see every branch; everyone else only their own
    cross_branch = serializers.BooleanField()
    capabilities = serializers.ListField(child=serializers.CharField())


class MeView(APIView):
    """Who am I, where do I work, and what may I do there."""

    permission_classes = [IsAuthenticated]
    serializer_class = MeSerializer

    @extend_schema(
        tags=["auth"],
        responses={200: MeSerializer},
        description="Current user profile, branch assignment and effective capabilities",
    )
    def get(self, request):
        user = request.user
        branch = user.branch

        return Response(
            {
                "id": user.id,
                "email": user.email,
                "full_name": user.full_name,
                "role": user.role,
                "branch_id": user.branch_id,
                "branch_name": branch.name if branch else None,
                "is_approved": user.is_approved,
                "cross_branch": ActingUser.from_user(user).is_privileged,
                "capabilities": sorted(effective_capabilities_for(user)),
            }
        )
