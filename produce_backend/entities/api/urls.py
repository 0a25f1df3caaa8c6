# entities/api/urls.py

from django.urls import path

from entities.api.views import CounterpartyDetailView, CounterpartyListCreateView

urlpatterns = [
    path("", CounterpartyListCreateView.as_view(), name="counterparties"),
    path(
        "<uuid:counterparty_id>/",
        CounterpartyDetailView.as_view(),
        name="counterparty-detail",
    ),
]
