"""Authentication backend for AssetDesk."""

from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend

User = get_user_model()

# Apps whose admin screens the admin staff roles may use
ADMIN_APPS = ("accounts", "assets")


class EmployeeIdentifierBackend(ModelBackend):
    """Allow login with an email address, employee id or username.

    Admin staff roles are granted the model permissions of the AssetDesk
    apps, so the admin site follows the role rather than Django groups.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        if username is None or password is None:
            return None

        username = username.strip()
        if "@" in username:
            users = User.objects.filter(email__iexact=username)
        else:
            users = User.objects.filter(username=username)
            if not users.exists():
                users = User.objects.filter(employee_id=username)
        if users.count() != 1:
            return None
        user = users.first()

        if user.check_password(password) and self.user_can_authenticate(user):
            return user
        return None

    def _is_admin_staff(self, user_obj):
        return user_obj.is_active and getattr(
            user_obj, "is_admin_staff", False
        )

    def has_perm(self, user_obj, perm, obj=None):
        if self._is_admin_staff(user_obj):
            if perm.split(".", 1)[0] in ADMIN_APPS:
                return True
        return super().has_perm(user_obj, perm, obj)

    def has_module_perms(self, user_obj, app_label):
        if self._is_admin_staff(user_obj) and app_label in ADMIN_APPS:
            return True
        return super().has_module_perms(user_obj, app_label)
