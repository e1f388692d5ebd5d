"""
Permission classes shared by the API apps.
"""
from rest_framework.permissions import BasePermission


class IsDepotOperator(BasePermission):
    """Allows access only to users attached to a depot."""
    message = 'This endpoint is restricted to depot operators.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and getattr(user, 'depot_id', None))
