from rest_framework import permissions

from .config import get_config


def is_backoffice_admin(user):
    """Staff users, plus anyone on the admin e-mail allow-list."""
    if not user or not user.is_authenticated:
        return False
    if user.is_staff:
        return True
    email = (getattr(user, 'email', '') or '').strip().lower()
    return bool(email) and email in get_config().admin_emails


def can_access_order(user, order):
    """The order's owner, or an admin."""
    if order.user_id is not None and order.user_id == user.id:
        return True
    return is_backoffice_admin(user)


class IsBackofficeAdmin(permissions.BasePermission):
    """
    Permission for every admin endpoint.
    Anonymous callers get 401, signed-in non-admins get 403.
    """
    message = 'Admin only'

    def has_permission(self, request, view):
        return is_backoffice_admin(request.user)
