"""
Permission classes for store-based access control.
"""

from rest_framework import permissions

from .models import StoreStaff


def get_accessible_store_ids(user):
    """
    Return the ids of stores the user may bill for, or None for unrestricted access.
    """
    if user.is_superuser:
        return None
    return set(StoreStaff.objects.filter(user=user).values_list("store_id", flat=True))


def user_can_access_store(user, store_id):
    """Check whether the user may act on the given store."""
    if not user.is_authenticated:
        return False
    store_ids = get_accessible_store_ids(user)
    if store_ids is None:
        return True
    return str(store_id) in {str(pk) for pk in store_ids}


def user_is_store_manager(user, store_id):
    """Check whether the user manages the given store (superusers always do)."""
    if user.is_superuser:
        return True
    return StoreStaff.objects.filter(user=user, store_id=store_id, role=StoreStaff.MANAGER).exists()


class HasStoreAccess(permissions.BasePermission):
    """
    Permission class to ensure users can only access resources from stores they staff.
    """

    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        return request.user.is_superuser or request.user.store_memberships.exists()

    def has_object_permission(self, request, view, obj):
        # Check if the object belongs to one of the user's stores
        store_id = getattr(obj, "store_id", None)
        if store_id is None and hasattr(obj, "transaction"):
            store_id = obj.transaction.store_id
        if store_id is None:
            return True
        return user_can_access_store(request.user, store_id)
