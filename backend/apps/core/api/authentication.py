from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from rest_framework import authentication, exceptions

API_KEY_HEADER = "X-API-Key"


def configured_api_keys() -> frozenset:
    return frozenset(getattr(settings, "STOCKROOM_API_KEYS", []))


class ApiKeyAuthentication(authentication.BaseAuthentication):
    """Authenticates the client application, not a person.

    Who performs an operation is named separately per request, see
    ``apps.core.api.staff.resolve_staff``.
    """

    def authenticate(self, request):
        api_key = (request.headers.get(API_KEY_HEADER) or "").strip()
        if not api_key:
            return None
        if api_key not in configured_api_keys():
            raise exceptions.AuthenticationFailed("Invalid API key.")
        return (AnonymousUser(), api_key)

    def authenticate_header(self, request):
        return API_KEY_HEADER
