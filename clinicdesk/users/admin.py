from django.contrib import admin
from django.contrib.auth import admin as auth_admin
from django.utils.translation import gettext_lazy as _

from clinicdesk.users.models import Clinic
from clinicdesk.users.models import ClinicMembership
from clinicdesk.users.models import MembershipRole
from clinicdesk.users.models import Role
from clinicdesk.users.models import User


@admin.register(User)
class UserAdmin(auth_admin.UserAdmin):
    fieldsets = (
        (None, {"fields": ("username", "password")}),
        (_("Personal info"), {"fields": ("name", "email", "current_clinic")}),
        (
            _("Permissions"),
            {
                "fields": (
                    "is_active",
                    "is_staff",
                    "is_superuser",
                    "groups",
                    "user_permissions",
                ),
            },
        ),
        (_("Important dates"), {"fields": ("last_login", "date_joined")}),
    )
    list_display = ["username", "name", "email", "is_superuser"]
    search_fields = ["name", "username", "email"]
    ordering = ["username"]
    raw_id_fields = ["current_clinic"]


class MembershipRoleInline(admin.TabularInline):
    model = MembershipRole
    extra = 0


@admin.register(ClinicMembership)
class ClinicMembershipAdmin(admin.ModelAdmin):
    list_display = ["user", "clinic", "is_active", "created"]
    list_filter = ["is_active"]
    search_fields = ["user__username", "user__email", "clinic__name"]
    raw_id_fields = ["user", "clinic"]
    inlines = [MembershipRoleInline]


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "email", "created"]
    search_fields = ["name", "slug", "email"]
    prepopulated_fields = {"slug": ("name",)}


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ["code", "name"]
