from __future__ import annotations

from apps.core.models import StaffMember
from apps.inventory.errors import MissingReason, PermissionDenied


def require_branch_access(actor: StaffMember, branch_id, action: str) -> None:
    if actor is None or not actor.can_act_for(branch_id):
        raise PermissionDenied(
            f"Staff member is not allowed to {action} for this branch.",
            {"branch": str(branch_id)},
        )


def require_elevated(actor: StaffMember, action: str) -> None:
    if actor is None or not actor.is_elevated:
        raise PermissionDenied(f"Only managers and owners may {action}.")


def clean_reason(reason, required: bool) -> str | None:
    text = (reason or "").strip()
    if required and not text:
        raise MissingReason("A reason is required for this operation.", {"reason": "required"})
    return text or None
