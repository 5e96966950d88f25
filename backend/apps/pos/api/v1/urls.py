from rest_framework.routers import DefaultRouter

from apps.pos.api.v1.views import ProductViewSet, SaleViewSet


router = DefaultRouter()
router.register("products", ProductViewSet, basename="product")
router.register("sales", SaleViewSet, basename="sale")

urlpatterns = router.urls
