"""Stock ledger for a single warehouse.

`StockItem` holds on-hand and held quantities per variant; available stock is
the difference. `StockReservation` rows record checkout holds keyed by an order
reference, and every change to on-hand stock leaves a `StockMovement`.
"""

from common.choices import MovementType, ReservationState
from django.db import models


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class StockItem(TimeStampedModel):
    variant = models.OneToOneField("catalog.ProductVariant", on_delete=models.CASCADE, related_name="stock")
    quantity = models.IntegerField(default=0)
    reserved = models.IntegerField(default=0)

    class Meta:
        ordering = ["variant_id"]
        constraints = [
            models.CheckConstraint(name="stock_non_negative", condition=models.Q(quantity__gte=0)),
            models.CheckConstraint(name="reserved_non_negative", condition=models.Q(reserved__gte=0)),
            # Holds can never exceed what is on hand
            models.CheckConstraint(name="reserved_le_quantity", condition=models.Q(reserved__lte=models.F("quantity"))),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.variant_id}: {self.available}/{self.quantity}"

    @property
    def available(self) -> int:
        return int(self.quantity) - int(self.reserved)


class StockMovement(TimeStampedModel):
    """Append-only record of on-hand changes; quantity is signed."""

    TYPE_INBOUND = MovementType.INBOUND
    TYPE_OUTBOUND = MovementType.OUTBOUND
    TYPE_ADJUST = MovementType.ADJUST

    stock_item = models.ForeignKey(StockItem, on_delete=models.CASCADE, related_name="movements")
    movement_type = models.CharField(max_length=16, choices=MovementType.choices)
    quantity = models.IntegerField()
    reason = models.CharField(max_length=200, blank=True)
    reference = models.CharField(max_length=120, blank=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(name="movement_non_zero", condition=~models.Q(quantity=0)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.movement_type} {self.quantity:+d} ({self.reference or '-'})"


class StockReservation(TimeStampedModel):
    """A checkout hold on one variant for one order reference."""

    STATE_ACTIVE = ReservationState.ACTIVE
    STATE_RELEASED = ReservationState.RELEASED
    STATE_CONVERTED = ReservationState.CONVERTED

    variant = models.ForeignKey("catalog.ProductVariant", on_delete=models.CASCADE, related_name="holds")
    quantity = models.IntegerField()
    reference = models.CharField(max_length=120)
    state = models.CharField(max_length=16, choices=ReservationState.choices, default=STATE_ACTIVE)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(name="reservation_positive_qty", condition=models.Q(quantity__gt=0)),
        ]
        indexes = [
            models.Index(fields=["reference", "state"], name="hold_reference_state_idx"),
            models.Index(fields=["state", "expires_at"], name="hold_state_expiry_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"hold {self.reference} x{self.quantity} ({self.state})"
