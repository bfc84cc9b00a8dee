from decimal import Decimal

import factory
from catalog.models import Product, ProductVariant
from factory import Faker
from factory.django import DjangoModelFactory


class ProductFactory(DjangoModelFactory):
    class Meta:
        model = Product

    title = Faker("sentence", nb_words=3)
    slug = factory.Sequence(lambda n: f"product-{n}")
    status = Product.STATUS_PUBLISHED


class ProductVariantFactory(DjangoModelFactory):
    """Active, published variant; pass ``stock=<n>`` to also create its stock item."""

    class Meta:
        model = ProductVariant

    product = factory.SubFactory(ProductFactory)
    name = Faker("color_name")
    sku = factory.Sequence(lambda n: f"SKU-{n:05d}")
    price = Decimal("100.00")
    status = ProductVariant.STATUS_ACTIVE

    @factory.post_generation
    def stock(obj, create, extracted, **kwargs):
        if not create or extracted is None:
            return
        from inventory.models import StockItem

        StockItem.objects.create(variant=obj, quantity=extracted, reserved=0)
