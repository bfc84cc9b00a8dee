"""Cart app models.

A cart belongs to exactly one account (guest or registered) and is nothing
more than a mapping of variant id -> quantity. Prices are never stored here;
they are read from the catalog each time the cart is viewed and frozen only
at checkout.
"""

from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Cart(TimeStampedModel):
    """Shopping cart bound to an account."""

    user = models.OneToOneField(settings.AUTH_USER_MODEL, related_name="cart", on_delete=models.CASCADE)

    class Meta:
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["updated_at"], name="cart_updated_at_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Cart#{self.id} ({self.user_id})"


class CartItem(TimeStampedModel):
    """One variant entry in a cart.

    `variant_id` is a plain reference: variants that disappear from the
    catalog leave stale entries that readers skip.
    """

    cart = models.ForeignKey(Cart, related_name="items", on_delete=models.CASCADE)
    variant_id = models.BigIntegerField(db_index=True)
    quantity = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "variant_id"], name="unique_variant_per_cart"),
            models.CheckConstraint(name="quantity_positive", condition=models.Q(quantity__gte=1)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CartItem#{self.id} cart={self.cart_id} variant={self.variant_id} qty={self.quantity}"
