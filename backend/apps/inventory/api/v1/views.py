from django.core.exceptions import ValidationError as DjangoValidationError
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.catalog.models import InventoryItem
from apps.core.api.staff import resolve_staff
from apps.core.models import Branch
from apps.inventory.api.v1.serializers import (
    AdjustmentSerializer,
    BatchReceiveSerializer,
    BatchSerializer,
    CorrectCountSerializer,
    LedgerLogSerializer,
    LedgerQuerySerializer,
    PortionSerializer,
    RestorePortionsSerializer,
    RestoreQuantitySerializer,
)
from apps.inventory.models import Batch
from apps.inventory.services import accounting, availability
from apps.inventory.services.ledger import query_logs

TRUTHY = {"1", "true", "True"}


def _branch_from_query(request) -> Branch:
    branch_id = request.query_params.get("branch")
    if not branch_id:
        raise ValidationError({"branch": "This query parameter is required."})
    try:
        return Branch.objects.get(id=branch_id)
    except (Branch.DoesNotExist, DjangoValidationError) as exc:
        raise NotFound("Branch not found.") from exc


class BatchListView(APIView):
    def get(self, request):
        queryset = Batch.objects.select_related("item", "branch").order_by("received_at", "batch_number")
        branch_id = request.query_params.get("branch")
        if branch_id:
            queryset = queryset.filter(branch_id=branch_id)
        item_id = request.query_params.get("item")
        if item_id:
            queryset = queryset.filter(item_id=item_id)
        if request.query_params.get("available") in TRUTHY:
            queryset = queryset.filter(remaining_quantity__gt=0)
        return Response(BatchSerializer(queryset, many=True).data)

    def post(self, request):
        actor = resolve_staff(request)
        serializer = BatchReceiveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        item = data.pop("item")
        branch = data.pop("branch")
        quantity = data.pop("quantity_received")
        batch = accounting.receive_batch(item, branch, quantity, actor, **data)
        return Response(BatchSerializer(batch).data, status=status.HTTP_201_CREATED)


class BatchDetailView(APIView):
    def get(self, request, batch_id):
        batch = get_object_or_404(Batch.objects.select_related("item", "branch"), id=batch_id)
        return Response(BatchSerializer(batch).data)


class BatchPortionsView(APIView):
    def get(self, request, batch_id):
        batch = get_object_or_404(Batch.objects.select_related("item", "branch"), id=batch_id)
        if request.query_params.get("available") in TRUTHY:
            portions = availability.available_portions(batch)
        else:
            portions = batch.portions.order_by("portion_number")
        return Response(PortionSerializer(portions, many=True).data)


class BatchRestorableAdjustmentsView(APIView):
    def get(self, request, batch_id):
        batch = get_object_or_404(Batch.objects.select_related("item"), id=batch_id)
        return Response(availability.restorable_adjustments(batch))


class BatchCorrectCountView(APIView):
    def post(self, request, batch_id):
        actor = resolve_staff(request)
        serializer = CorrectCountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        log = accounting.correct_batch_count(
            batch_id,
            serializer.validated_data["corrected_quantity"],
            serializer.validated_data["reason"],
            actor,
        )
        batch = Batch.objects.select_related("item", "branch").get(id=batch_id)
        return Response({"batch": BatchSerializer(batch).data, "log": LedgerLogSerializer(log).data})


class BatchRestoreQuantityView(APIView):
    def post(self, request, batch_id):
        actor = resolve_staff(request)
        serializer = RestoreQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        log = accounting.restore_quantity(
            batch_id,
            serializer.validated_data["amounts"],
            serializer.validated_data["reason"],
            actor,
        )
        batch = Batch.objects.select_related("item", "branch").get(id=batch_id)
        return Response({"batch": BatchSerializer(batch).data, "log": LedgerLogSerializer(log).data})


class AdjustmentCreateView(APIView):
    def post(self, request):
        actor = resolve_staff(request)
        serializer = AdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        logs = accounting.record_adjustment(
            data["adjustment_type"],
            data["item"],
            data["branch"],
            actor,
            batch_id=data.get("batch"),
            quantity=data.get("quantity"),
            portion_ids=data.get("portion_ids"),
            reason=data.get("reason"),
        )
        return Response(LedgerLogSerializer(logs, many=True).data, status=status.HTTP_201_CREATED)


class PortionRestoreView(APIView):
    def post(self, request):
        actor = resolve_staff(request)
        serializer = RestorePortionsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        logs = accounting.restore_portions(
            serializer.validated_data["portion_ids"],
            serializer.validated_data["reason"],
            actor,
        )
        return Response(LedgerLogSerializer(logs, many=True).data)


class LedgerLogListView(APIView):
    def get(self, request):
        serializer = LedgerQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        filters = serializer.validated_data
        queryset = query_logs(
            batch_id=filters.get("batch"),
            portion_id=filters.get("portion"),
            branch_id=filters.get("branch"),
            item_id=filters.get("item"),
            actions=filters.get("action"),
            date_from=filters.get("date_from"),
            date_to=filters.get("date_to"),
            search=filters.get("search"),
        )
        return Response(LedgerLogSerializer(queryset, many=True).data)


class BranchStockView(APIView):
    def get(self, request):
        branch = _branch_from_query(request)
        return Response(availability.branch_overview(branch))


class ItemStockView(APIView):
    def get(self, request, item_id):
        item = get_object_or_404(InventoryItem, id=item_id)
        branch = _branch_from_query(request)
        stock = availability.current_stock(item, branch)
        return Response(
            {
                "item": str(item.id),
                "branch": str(branch.id),
                "current_stock": str(stock),
                "status": availability.stock_status(item, branch),
            }
        )


class ExpiringBatchesView(APIView):
    def get(self, request):
        branch = _branch_from_query(request)
        return Response(BatchSerializer(availability.expiring_batches(branch), many=True).data)
