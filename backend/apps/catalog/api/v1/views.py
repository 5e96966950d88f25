from django.db.models import Q
from rest_framework import viewsets

from apps.catalog.api.v1.serializers import InventoryCategorySerializer, InventoryItemSerializer
from apps.catalog.models import InventoryCategory, InventoryItem


class InventoryCategoryViewSet(viewsets.ModelViewSet):
    queryset = InventoryCategory.objects.all()
    serializer_class = InventoryCategorySerializer


class InventoryItemViewSet(viewsets.ModelViewSet):
    serializer_class = InventoryItemSerializer

    def get_queryset(self):
        queryset = InventoryItem.objects.select_related("category").prefetch_related("stockings").order_by("name")
        branch_id = self.request.query_params.get("branch")
        if branch_id:
            queryset = queryset.filter(stockings__branch_id=branch_id)
        tracking_type = self.request.query_params.get("tracking_type")
        if tracking_type:
            queryset = queryset.filter(tracking_type=tracking_type)
        query = (self.request.query_params.get("q") or "").strip()
        if query:
            queryset = queryset.filter(Q(name__icontains=query) | Q(code__icontains=query))
        return queryset
