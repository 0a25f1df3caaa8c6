# entities/api/views.py

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import generics, status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from entities.api.serializers import CounterpartySerializer, CounterpartyWriteSerializer
from entities.models import Counterparty
from entities.services.entity_service import (
    CounterpartyError,
    CounterpartyPermissionError,
    upsert_counterparty,
)
from permissions.roles import ActingUser, IsStaff


def _error_response(exc: CounterpartyError) -> Response:
    code = (
        status.HTTP_403_FORBIDDEN
        if isinstance(exc, CounterpartyPermissionError)
        else status.HTTP_400_BAD_REQUEST
    )
    return Response({"detail": str(exc)}, status=code)


class CounterpartyListCreateView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, IsStaff]
    serializer_class = CounterpartySerializer
    filterset_fields = ["entity_type", "is_active"]

    def get_queryset(self):
        qs = Counterparty.objects.all().order_by("name")
        q = (self.request.query_params.get("q") or "").strip()
        if q:
            qs = qs.filter(name__icontains=q)
        return qs

    @extend_schema(
        tags=["entities"],
        parameters=[OpenApiParameter(name="q", type=str, required=False)],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @extend_schema(
        tags=["entities"],
        request=CounterpartyWriteSerializer,
        responses={201: CounterpartySerializer},
    )
    def post(self, request):
        s = CounterpartyWriteSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            counterparty = upsert_counterparty(
                acting_user=ActingUser.from_user(request.user),
                **s.validated_data,
            )
        except CounterpartyError as exc:
            return _error_response(exc)

        return Response(
            CounterpartySerializer(counterparty).data, status=status.HTTP_201_CREATED
        )


class CounterpartyDetailView(GenericAPIView):
    permission_classes = [IsAuthenticated, IsStaff]
    serializer_class = CounterpartySerializer

    @extend_schema(tags=["entities"], responses=CounterpartySerializer)
    def get(self, request, counterparty_id):
        counterparty = get_object_or_404(Counterparty, id=counterparty_id)
        return Response(CounterpartySerializer(counterparty).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["entities"],
        request=CounterpartyWriteSerializer,
        responses=CounterpartySerializer,
    )
    def patch(self, request, counterparty_id):
        s = CounterpartyWriteSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)

        try:
            counterparty = upsert_counterparty(
                acting_user=ActingUser.from_user(request.user),
                counterparty_id=counterparty_id,
                **s.validated_data,
            )
        except CounterpartyError as exc:
            return _error_response(exc)

        return Response(CounterpartySerializer(counterparty).data, status=status.HTTP_200_OK)
