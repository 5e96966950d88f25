from __future__ import annotations

from datetime import datetime

from django.db.models import Q

from apps.inventory.models import LedgerLog


def append(batch, action: str, details: dict, actor=None, portion=None, sale=None) -> LedgerLog:
    return LedgerLog.objects.create(
        batch=batch,
        portion=portion,
        actor=actor,
        sale=sale,
        action=action,
        details=details,
    )


def query_logs(
    *,
    batch_id=None,
    portion_id=None,
    branch_id=None,
    item_id=None,
    actions=None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
):
    queryset = LedgerLog.objects.select_related(
        "batch",
        "batch__item",
        "batch__branch",
        "portion",
        "actor",
    )
    if batch_id:
        queryset = queryset.filter(batch_id=batch_id)
    if portion_id:
        queryset = queryset.filter(portion_id=portion_id)
    if branch_id:
        queryset = queryset.filter(batch__branch_id=branch_id)
    if item_id:
        queryset = queryset.filter(batch__item_id=item_id)
    if actions:
        queryset = queryset.filter(action__in=list(actions))
    if date_from:
        queryset = queryset.filter(created_at__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__lte=date_to)

    term = (search or "").strip()
    if term:
        condition = (
            Q(batch__item__name__icontains=term)
            | Q(batch__item__code__icontains=term)
            | Q(batch__label__icontains=term)
            | Q(portion__label__icontains=term)
            | Q(actor__name__icontains=term)
        )
        if term.isdigit():
            condition |= Q(batch__batch_number=int(term))
        queryset = queryset.filter(condition)

    return queryset.order_by("-created_at", "id")
