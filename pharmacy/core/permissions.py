from rest_framework.permissions import BasePermission


def is_admin_user(user):
    """Admins (role admin or Django superuser) manage the back office"""
    return bool(user and user.is_authenticated and getattr(user, 'is_admin', False))


class IsAdminRole(BasePermission):
    """Allows access only to users with the admin role"""
    message = 'Only administrators can perform this action'

    def has_permission(self, request, view):
        return is_admin_user(request.user)
