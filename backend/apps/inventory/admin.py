from django.contrib import admin

from apps.inventory.models import Batch, LedgerLog, Portion


@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    list_display = (
        "item",
        "branch",
        "batch_number",
        "quantity_received",
        "remaining_quantity",
        "received_at",
        "expiration_date",
    )
    search_fields = ("item__name", "item__code", "label")
    list_filter = ("branch", "item__tracking_type")
    readonly_fields = ("batch_number", "quantity_received", "remaining_quantity", "source_batch")


@admin.register(Portion)
class PortionAdmin(admin.ModelAdmin):
    list_display = ("label", "batch", "current_branch", "status")
    search_fields = ("label",)
    list_filter = ("status", "current_branch")
    readonly_fields = ("status", "current_branch", "batch")

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(LedgerLog)
class LedgerLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "action", "batch", "portion", "actor")
    list_filter = ("action",)
    search_fields = ("batch__item__name", "batch__item__code", "portion__label", "actor__name")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
