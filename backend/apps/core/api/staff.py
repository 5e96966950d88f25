from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import exceptions

from apps.core.models import StaffMember


STAFF_HEADER = "X-Staff-Id"


def resolve_staff(request) -> StaffMember:
    """Return the active staff member the caller acts as.

    The API key authenticates the client application; the staff member named
    in the ``X-Staff-Id`` header is the actor recorded on every ledger entry.
    """
    staff_id = request.headers.get(STAFF_HEADER)
    if not staff_id:
        raise exceptions.PermissionDenied(f"{STAFF_HEADER} header is required.")
    try:
        return StaffMember.objects.select_related("branch").get(pk=staff_id, is_active=True)
    except (StaffMember.DoesNotExist, DjangoValidationError) as exc:
        raise exceptions.PermissionDenied("Unknown or inactive staff member.") from exc
