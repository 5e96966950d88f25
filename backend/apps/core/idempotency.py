import json

from django.utils import timezone

from apps.core.models import IdempotentRequest


def normalize_payload(data):
    return json.loads(json.dumps(data, default=str))


def find_completed(scope: str, idempotency_key: str):
    if not idempotency_key:
        return None
    return (
        IdempotentRequest.objects.filter(
            scope=scope,
            idempotency_key=idempotency_key,
            status=IdempotentRequest.Status.COMPLETED,
        )
        .order_by("-started_at")
        .first()
    )


def start_request(scope: str, idempotency_key: str, payload) -> IdempotentRequest:
    return IdempotentRequest.objects.create(
        scope=scope,
        idempotency_key=idempotency_key,
        status=IdempotentRequest.Status.STARTED,
        payload=normalize_payload(payload),
    )


def complete_request(record: IdempotentRequest, status_code: int, data):
    record.status = IdempotentRequest.Status.COMPLETED
    record.finished_at = timezone.now()
    record.result = {
        "status_code": status_code,
        "data": normalize_payload(data),
    }
    record.save(update_fields=["status", "finished_at", "result"])


def fail_request(record: IdempotentRequest, status_code: int, errors):
    record.status = IdempotentRequest.Status.FAILED
    record.finished_at = timezone.now()
    record.result = {
        "status_code": status_code,
        "errors": normalize_payload(errors),
    }
    record.save(update_fields=["status", "finished_at", "result"])
