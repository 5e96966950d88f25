from __future__ import annotations

import uuid

from django.db import models

from apps.core.codes import check_code


class Branch(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=32, unique=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "core_branch"
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"

    def save(self, *args, **kwargs):
        check_code(self.code)
        super().save(*args, **kwargs)


class StaffRole(models.TextChoices):
    STAFF = "staff", "staff"
    MANAGER = "manager", "manager"
    OWNER = "owner", "owner"


ELEVATED_ROLES = {StaffRole.MANAGER, StaffRole.OWNER}


class StaffMember(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    branch = models.ForeignKey(
        Branch,
        on_delete=models.SET_NULL,
        related_name="staff",
        blank=True,
        null=True,
    )
    role = models.CharField(max_length=16, choices=StaffRole.choices, default=StaffRole.STAFF)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "core_staff_member"
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} [{self.role}]"

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES

    def can_act_for(self, branch_id) -> bool:
        if self.is_elevated:
            return True
        return self.branch_id is not None and str(self.branch_id) == str(branch_id)


class IdempotentRequest(models.Model):
    class Status(models.TextChoices):
        STARTED = "started", "started"
        COMPLETED = "completed", "completed"
        FAILED = "failed", "failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    scope = models.CharField(max_length=64)
    idempotency_key = models.CharField(max_length=255)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.STARTED)
    payload = models.JSONField(default=dict, blank=True)
    result = models.JSONField(default=dict, blank=True)
    started_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = "core_idempotent_request"
        ordering = ["-started_at"]
        indexes = [
            models.Index(fields=["scope", "idempotency_key"], name="idx_core_idem_scope_key"),
        ]

    def __str__(self) -> str:
        return f"{self.scope}:{self.idempotency_key}:{self.status}"
