from rest_framework.permissions import BasePermission, SAFE_METHODS


class IsNotBanned(BasePermission):
    """Banned accounts keep read access but cannot change anything"""
    message = 'Your account has been banned.'

    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        user = request.user
        if user and user.is_authenticated and user.is_banned:
            if user.ban_reason:
                self.message = f'Your account has been banned: {user.ban_reason}'
            return False
        return True
