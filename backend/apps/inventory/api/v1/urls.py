from django.urls import path

from apps.inventory.api.v1.views import (
    AdjustmentCreateView,
    BatchCorrectCountView,
    BatchDetailView,
    BatchListView,
    BatchPortionsView,
    BatchRestorableAdjustmentsView,
    BatchRestoreQuantityView,
    BranchStockView,
    ExpiringBatchesView,
    ItemStockView,
    LedgerLogListView,
    PortionRestoreView,
)


urlpatterns = [
    path("batches/", BatchListView.as_view(), name="batch-list"),
    path("batches/<uuid:batch_id>/", BatchDetailView.as_view(), name="batch-detail"),
    path("batches/<uuid:batch_id>/portions/", BatchPortionsView.as_view(), name="batch-portions"),
    path(
        "batches/<uuid:batch_id>/restorable-adjustments/",
        BatchRestorableAdjustmentsView.as_view(),
        name="batch-restorable-adjustments",
    ),
    path("batches/<uuid:batch_id>/correct-count/", BatchCorrectCountView.as_view(), name="batch-correct-count"),
    path(
        "batches/<uuid:batch_id>/restore-quantity/",
        BatchRestoreQuantityView.as_view(),
        name="batch-restore-quantity",
    ),
    path("adjustments/", AdjustmentCreateView.as_view(), name="adjustment-create"),
    path("portions/restore/", PortionRestoreView.as_view(), name="portion-restore"),
    path("ledger/", LedgerLogListView.as_view(), name="ledger-list"),
    path("stock/", BranchStockView.as_view(), name="branch-stock"),
    path("stock/expiring/", ExpiringBatchesView.as_view(), name="stock-expiring"),
    path("stock/items/<uuid:item_id>/", ItemStockView.as_view(), name="item-stock"),
]
