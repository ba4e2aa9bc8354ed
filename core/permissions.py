"""
Role and department based permissions.

Super admins pass every check. Admins additionally need a matching department
when the permission names departments. Everyone else needs a listed role.
"""
from typing import Iterable

from rest_framework.permissions import BasePermission


class RolePermission(BasePermission):
    roles = ()
    departments = ()

    def has_permission(self, request, view):
        user = request.user
        if not getattr(user, 'is_authenticated', False):
            return False

        if getattr(user, 'is_super_admin', False):
            return True

        role = (getattr(user, 'role', '') or '').lower()
        department = (getattr(user, 'department', '') or '').lower()

        if self.roles and role not in self.roles:
            self.message = f"Insufficient permissions. Required roles: {', '.join(self.roles)}"
            self.code = 'ROLE_REQUIRED'
            return False

        if self.departments and role == 'admin' and department not in self.departments:
            self.message = (
                f"Department access denied. Required departments: {', '.join(self.departments)}"
            )
            self.code = 'DEPARTMENT_REQUIRED'
            return False

        return True


def role_required(roles: Iterable[str] = (), departments: Iterable[str] = ()):
    """
    Build a permission class for the given roles/departments.

    Usage:
        permission_classes = [IsAuthenticated, role_required(['admin'], ['purchase'])]
    """
    return type(
        'RoleRequired',
        (RolePermission,),
        {
            'roles': tuple(r.lower() for r in roles),
            'departments': tuple(d.lower() for d in departments),
        },
    )


IsPurchaseAdmin = role_required(roles=['admin'], departments=['purchase'])
