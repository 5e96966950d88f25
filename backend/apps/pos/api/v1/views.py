from rest_framework import mixins, status, viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from apps.core.api.staff import resolve_staff
from apps.core.idempotency import complete_request, fail_request, find_completed, start_request
from apps.inventory.errors import LedgerError
from apps.pos.api.v1.serializers import ProductSerializer, SaleCreateSerializer, SaleSerializer
from apps.pos.models import Product, Sale
from apps.pos.services import record_sale


class ProductViewSet(viewsets.ModelViewSet):
    queryset = Product.objects.prefetch_related("ingredients").order_by("name")
    serializer_class = ProductSerializer


class SaleViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = SaleSerializer

    def get_queryset(self):
        queryset = Sale.objects.prefetch_related("lines").order_by("-sold_at")
        branch_id = self.request.query_params.get("branch")
        if branch_id:
            queryset = queryset.filter(branch_id=branch_id)
        return queryset

    def create(self, request, *args, **kwargs):
        scope = "sale"
        idempotency_key = request.headers.get("Idempotency-Key")
        if not idempotency_key:
            raise ValidationError({"idempotency_key": "Idempotency-Key header is required."})

        existing = find_completed(scope, idempotency_key)
        if existing:
            result = existing.result or {}
            return Response(result.get("data", {}), status=result.get("status_code", status.HTTP_200_OK))

        actor = resolve_staff(request)
        record = start_request(scope, idempotency_key, request.data)

        try:
            serializer = SaleCreateSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            data = serializer.validated_data
            sale = record_sale(
                data["branch"],
                [(line["product"], line["quantity"]) for line in data["lines"]],
                actor,
                portions=data.get("portions"),
                sold_at=data.get("sold_at"),
            )
            payload = SaleSerializer(sale).data
            complete_request(record, status.HTTP_201_CREATED, payload)
            return Response(payload, status=status.HTTP_201_CREATED)
        except ValidationError as exc:
            fail_request(record, status.HTTP_400_BAD_REQUEST, exc.detail)
            raise
        except LedgerError as exc:
            fail_request(record, exc.status_code, {"code": exc.code, "detail": exc.detail})
            raise
