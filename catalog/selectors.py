"""Selectors for the catalog domain.

Read-only lookups used by the cart and checkout. Selectors return querysets
or plain mappings and never mutate.
"""

from typing import Iterable

from django.db.models import QuerySet
from django.db.models.expressions import OuterRef, Subquery
from django.db.models.functions import Coalesce
from inventory.models import StockItem

from .models import ProductVariant


def variants_with_availability() -> QuerySet[ProductVariant]:
    """Return variants annotated with ``available`` (quantity - reserved).

    When no stock item exists for a variant, availability defaults to 0.
    """

    qty_sub = Subquery(StockItem.objects.filter(variant_id=OuterRef("pk")).values("quantity")[:1])
    res_sub = Subquery(StockItem.objects.filter(variant_id=OuterRef("pk")).values("reserved")[:1])
    return ProductVariant.objects.select_related("product").annotate(
        available=Coalesce(qty_sub, 0) - Coalesce(res_sub, 0)
    )


def get_variants_by_ids(variant_ids: Iterable[int]) -> dict[int, ProductVariant]:
    """Map variant id -> annotated variant for the ids that still exist."""

    ids = {int(v) for v in variant_ids}
    if not ids:
        return {}
    return {v.id: v for v in variants_with_availability().filter(id__in=ids)}


def get_variant(variant_id: int) -> ProductVariant | None:
    try:
        return variants_with_availability().get(id=variant_id)
    except ProductVariant.DoesNotExist:
        return None
