from rest_framework.permissions import BasePermission

from apps.core.api.authentication import configured_api_keys


class HasValidApiKey(BasePermission):
    message = "Send a configured key in the X-API-Key header."

    def has_permission(self, request, view):
        return request.method == "OPTIONS" or request.auth in configured_api_keys()
