from django.contrib import admin

from apps.core.models import Branch, IdempotentRequest, StaffMember


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name", "code")


@admin.register(StaffMember)
class StaffMemberAdmin(admin.ModelAdmin):
    list_display = ("name", "branch", "role", "is_active")
    list_filter = ("role", "is_active")
    search_fields = ("name",)


@admin.register(IdempotentRequest)
class IdempotentRequestAdmin(admin.ModelAdmin):
    list_display = ("scope", "idempotency_key", "status", "started_at", "finished_at")
    list_filter = ("scope", "status")
    search_fields = ("idempotency_key",)
