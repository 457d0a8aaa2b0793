from django.conf import settings
from django.db import models


class Tenant(models.Model):
    """
    A merchant store served under its own subdomain.

    ``is_active`` is the flag the storefront checks on every request. It is
    only switched on by a confirmed payment (setup fee or subscription
    charge) and switched off by the subscription expiry sweep.
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="owned_tenants",
        verbose_name="Owner",
    )
    name = models.CharField(max_length=120, verbose_name="Store name")
    subdomain = models.SlugField(max_length=63, unique=True, verbose_name="Subdomain")
    description = models.TextField(blank=True, verbose_name="Description")
    is_active = models.BooleanField(
        default=False,
        db_index=True,
        verbose_name="Active",
        help_text="Store may serve storefront traffic.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Tenant"
        verbose_name_plural = "Tenants"
        ordering = ["name"]

    def __str__(self):
        state = "active" if self.is_active else "inactive"
        return f"{self.name} ({self.subdomain}, {state})"
