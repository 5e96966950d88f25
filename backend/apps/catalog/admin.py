from django.contrib import admin

from apps.catalog.models import BranchStocking, InventoryCategory, InventoryItem


class BranchStockingInline(admin.TabularInline):
    model = BranchStocking
    extra = 0


@admin.register(InventoryCategory)
class InventoryCategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "created_at")
    search_fields = ("name",)


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "category", "unit", "tracking_type", "days_to_warn_before_expiry")
    list_filter = ("tracking_type", "unit", "category")
    search_fields = ("name", "code")
    inlines = [BranchStockingInline]
