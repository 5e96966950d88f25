from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.api.staff import resolve_staff
from apps.core.idempotency import complete_request, fail_request, find_completed, start_request
from apps.inventory.errors import LedgerError
from apps.transfers import services
from apps.transfers.api.v1.serializers import (
    TransferCreateSerializer,
    TransferReasonSerializer,
    TransferReceiveSerializer,
    TransferSerializer,
)
from apps.transfers.models import Transfer


def _transfer_payload(transfer_id):
    transfer = Transfer.objects.prefetch_related("items__item", "items__portion").get(pk=transfer_id)
    return TransferSerializer(transfer).data


class TransferViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = TransferSerializer

    def get_queryset(self):
        queryset = Transfer.objects.prefetch_related("items__item", "items__portion").order_by("-sent_at")
        branch_id = self.request.query_params.get("branch")
        if branch_id:
            direction = self.request.query_params.get("direction")
            if direction == "outgoing":
                queryset = queryset.filter(source_branch_id=branch_id)
            elif direction == "incoming":
                queryset = queryset.filter(destination_branch_id=branch_id)
            else:
                queryset = queryset.filter(Q(source_branch_id=branch_id) | Q(destination_branch_id=branch_id))
        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset

    def create(self, request, *args, **kwargs):
        scope = "transfer"
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
            serializer = TransferCreateSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            data = serializer.validated_data
            transfer = services.create_transfer(
                data["source_branch"],
                data["destination_branch"],
                [dict(line) for line in data["items"]],
                actor,
                notes=data.get("notes"),
            )
            payload = _transfer_payload(transfer.id)
            complete_request(record, status.HTTP_201_CREATED, payload)
            return Response(payload, status=status.HTTP_201_CREATED)
        except ValidationError as exc:
            fail_request(record, status.HTTP_400_BAD_REQUEST, exc.detail)
            raise
        except LedgerError as exc:
            fail_request(record, exc.status_code, {"code": exc.code, "detail": exc.detail})
            raise


class TransferReceiveView(APIView):
    def post(self, request, transfer_id):
        actor = resolve_staff(request)
        serializer = TransferReceiveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        services.receive_transfer(transfer_id, serializer.validated_data["receptions"], actor)
        return Response(_transfer_payload(transfer_id))


class TransferCancelView(APIView):
    def post(self, request, transfer_id):
        actor = resolve_staff(request)
        serializer = TransferReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        services.cancel_transfer(transfer_id, actor, serializer.validated_data.get("reason"))
        return Response(_transfer_payload(transfer_id))


class TransferRejectView(APIView):
    def post(self, request, transfer_id):
        actor = resolve_staff(request)
        serializer = TransferReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        services.reject_transfer(transfer_id, actor, serializer.validated_data.get("reason"))
        return Response(_transfer_payload(transfer_id))
