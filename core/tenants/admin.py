from django.contrib import admin

from .models import Tenant


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ("name", "subdomain", "owner", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name", "subdomain", "owner__email")
    readonly_fields = ("created_at", "updated_at")
