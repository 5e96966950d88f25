from django.contrib import admin

from apps.transfers.models import Transfer, TransferItem


class TransferItemInline(admin.TabularInline):
    model = TransferItem
    extra = 0
    readonly_fields = (
        "item",
        "batch",
        "portion",
        "quantity",
        "reception_status",
        "received_quantity",
        "destination_batch",
    )


@admin.register(Transfer)
class TransferAdmin(admin.ModelAdmin):
    list_display = ("sent_at", "source_branch", "destination_branch", "status", "received_at")
    list_filter = ("status", "source_branch", "destination_branch")
    readonly_fields = ("status", "sent_at", "received_at", "sent_by", "received_by")
    inlines = [TransferItemInline]
