from django.urls import path

from apps.transfers.api.v1.views import (
    TransferCancelView,
    TransferReceiveView,
    TransferRejectView,
    TransferViewSet,
)


urlpatterns = [
    path(
        "transfers/",
        TransferViewSet.as_view({"get": "list", "post": "create"}),
        name="transfer-list-create",
    ),
    path(
        "transfers/<uuid:transfer_id>/",
        TransferViewSet.as_view({"get": "retrieve"}, lookup_url_kwarg="transfer_id"),
        name="transfer-detail",
    ),
    path("transfers/<uuid:transfer_id>/receive/", TransferReceiveView.as_view(), name="transfer-receive"),
    path("transfers/<uuid:transfer_id>/cancel/", TransferCancelView.as_view(), name="transfer-cancel"),
    path("transfers/<uuid:transfer_id>/reject/", TransferRejectView.as_view(), name="transfer-reject"),
]
