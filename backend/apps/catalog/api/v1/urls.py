from rest_framework.routers import DefaultRouter

from apps.catalog.api.v1.views import InventoryCategoryViewSet, InventoryItemViewSet


router = DefaultRouter()
router.register("inventory-categories", InventoryCategoryViewSet, basename="inventory-category")
router.register("inventory-items", InventoryItemViewSet, basename="inventory-item")

urlpatterns = router.urls
