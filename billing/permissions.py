from rest_framework.permissions import BasePermission

from core.tenants.models import Tenant


class IsTenantOwnerOrAdmin(BasePermission):
    """Allows access only to the tenant's owner or platform staff."""

    message = "Only the store owner can manage its subscription."

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if user.is_staff:
            return True
        tenant_id = view.kwargs.get("tenant_id")
        return Tenant.objects.filter(pk=tenant_id, owner=user).exists()
