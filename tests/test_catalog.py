"""Tests for the product catalog."""

import pytest

from beadshop.errors import (
    DuplicateReviewError,
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from beadshop.models import Product, ProductUnit, SaleConfig
from beadshop.catalog import product_view


@pytest.fixture
def stocked(shop):
    """Three products across two categories."""
    catalog = shop.catalog
    items = [
        Product.create(name="Moonstone Earrings", price=30.0, category="earrings", stock=3,
                       description="Drop earrings", rating=4.5, review_count=2),
        Product.create(name="Beaded Anklet", price=15.0, category="bracelets", stock=8,
                       featured=True, rating=3.0, review_count=1),
        Product.create(name="Sunset Bracelet", price=45.0, category="bracelets", stock=1,
                       sale=SaleConfig(True, "percentage", 50), rating=5.0, review_count=4),
    ]
    for product in items:
        catalog.add_product(product)
    return {p.name: p for p in items}


class TestListProducts:
    def test_filters_inactive(self, shop, stocked):
        hidden = stocked["Beaded Anklet"]
        hidden.is_active = False
        shop.catalog.update_product(hidden)

        products, pagination = shop.catalog.list_products()
        assert hidden.id not in [p.id for p in products]
        assert pagination["total"] == 2

        products, _ = shop.catalog.list_products(include_inactive=True)
        assert len(products) == 3

    def test_category(self, shop, stocked):
        products, _ = shop.catalog.list_products(category="Bracelets")
        assert sorted(p.name for p in products) == ["Beaded Anklet", "Sunset Bracelet"]

    def test_featured(self, shop, stocked):
        products, _ = shop.catalog.list_products(featured=True)
        assert [p.name for p in products] == ["Beaded Anklet"]

    def test_search_matches_name_and_description(self, shop, stocked):
        products, _ = shop.catalog.list_products(search="drop")
        assert [p.name for p in products] == ["Moonstone Earrings"]

    def test_price_range_uses_sale_price(self, shop, stocked):
        products, _ = shop.catalog.list_products(min_price=20, max_price=25)
        assert [p.name for p in products] == ["Sunset Bracelet"]

    def test_sort_by_price(self, shop, stocked):
        products, _ = shop.catalog.list_products(sort_by="price-low")
        assert [p.name for p in products] == [
            "Beaded Anklet", "Sunset Bracelet", "Moonstone Earrings",
        ]
        products, _ = shop.catalog.list_products(sort_by="price-high")
        assert products[0].name == "Moonstone Earrings"

    def test_sort_by_rating(self, shop, stocked):
        products, _ = shop.catalog.list_products(sort_by="rating")
        assert [p.name for p in products] == [
            "Sunset Bracelet", "Moonstone Earrings", "Beaded Anklet",
        ]

    def test_sort_featured_first(self, shop, stocked):
        products, _ = shop.catalog.list_products(sort_by="featured")
        assert products[0].name == "Beaded Anklet"

    def test_pagination(self, shop, stocked):
        products, pagination = shop.catalog.list_products(sort_by="price-low", page=2, limit=2)
        assert [p.name for p in products] == ["Moonstone Earrings"]
        assert pagination == {"page": 2, "limit": 2, "total": 3, "pages": 2}

    def test_invalid_sort(self, shop):
        with pytest.raises(ValidationError, match="Invalid sort option"):
            shop.catalog.list_products(sort_by="cheapest")

    def test_unit_prices_drive_lowest_price(self, shop, ring):
        products, _ = shop.catalog.list_products(max_price=20)
        assert [p.id for p in products] == [ring.id]


class TestProducts:
    def test_get_missing(self, shop):
        with pytest.raises(ProductNotFoundError, match="Product not found: nope"):
            shop.catalog.get_product("nope")

    def test_negative_price_rejected(self, shop):
        with pytest.raises(ValidationError):
            shop.catalog.add_product(Product.create(name="Bad", price=-1, category="rings"))

    def test_update_missing(self, shop):
        with pytest.raises(ProductNotFoundError):
            shop.catalog.update_product(Product.create(name="Ghost", price=1, category="rings"))

    def test_delete(self, shop, necklace):
        shop.catalog.delete_product(necklace.id)
        with pytest.raises(ProductNotFoundError):
            shop.catalog.get_product(necklace.id)
        with pytest.raises(ProductNotFoundError):
            shop.catalog.delete_product(necklace.id)

    def test_product_view(self, shop, ring):
        ring.sale = SaleConfig(True, "percentage", 10)
        view = product_view(ring)
        assert view["salePrice"] == 18.0
        assert view["effectivePrice"] == 18.0
        assert view["totalStock"] == 2
        assert [u["effectivePrice"] for u in view["units"]] == [18.0, 19.8]


class TestBulkOperations:
    def test_bulk_price_updates_units(self, shop, necklace, ring):
        updated = shop.catalog.bulk_update_prices([necklace.id, ring.id, "missing"], 24.999)
        assert updated == 2
        assert shop.catalog.get_product(necklace.id).price == 25.0
        assert [u.price for u in shop.catalog.get_product(ring.id).units] == [25.0, 25.0]

    def test_bulk_price_negative(self, shop, necklace):
        with pytest.raises(ValidationError):
            shop.catalog.bulk_update_prices([necklace.id], -5)

    def test_set_and_remove_sale(self, shop, necklace, ring):
        assert shop.catalog.bulk_sale([necklace.id, ring.id], "setSale", "amount", 5) == 2
        product = shop.catalog.get_product(ring.id)
        assert product.sale == SaleConfig(True, "amount", 5.0)
        assert all(u.sale == SaleConfig(True, "amount", 5.0) for u in product.units)

        shop.catalog.bulk_sale([necklace.id, ring.id], "removeSale")
        assert shop.catalog.get_product(necklace.id).sale is None
        assert shop.catalog.get_product(ring.id).units[0].sale is None

    @pytest.mark.parametrize(
        "action,sale_type,value",
        [
            ("setSale", "bogo", 10),
            ("setSale", "percentage", 0),
            ("setSale", "percentage", 101),
            ("clearance", None, None),
        ],
    )
    def test_invalid_sale(self, shop, necklace, action, sale_type, value):
        with pytest.raises(ValidationError):
            shop.catalog.bulk_sale([necklace.id], action, sale_type, value)


class TestStock:
    def test_decrement_product(self, shop, necklace):
        assert shop.catalog.decrement_stock(necklace.id, None, 2).stock == 3

    def test_decrement_unit(self, shop, ring):
        product = shop.catalog.decrement_stock(ring.id, "size-6", 1)
        assert product.get_unit("size-6").stock == 1

    def test_decrement_below_zero(self, shop, ring):
        with pytest.raises(InsufficientStockError):
            shop.catalog.decrement_stock(ring.id, "size-8", 1)
        assert shop.catalog.get_product(ring.id).get_unit("size-8").stock == 0

    def test_decrement_missing_unit(self, shop, ring):
        with pytest.raises(ProductNotFoundError):
            shop.catalog.decrement_stock(ring.id, "size-12", 1)


class TestReviews:
    def test_rating_aggregated(self, shop, necklace):
        shop.catalog.add_review(necklace.id, "u1", 5, user_name="Ann", title="Lovely")
        shop.catalog.add_review(necklace.id, "u2", 4, user_name="Bo")

        product = shop.catalog.get_product(necklace.id)
        assert product.rating == 4.5
        assert product.review_count == 2
        assert len(shop.catalog.list_reviews(necklace.id)) == 2

    def test_one_review_per_user(self, shop, necklace):
        shop.catalog.add_review(necklace.id, "u1", 5)
        with pytest.raises(DuplicateReviewError, match="already reviewed"):
            shop.catalog.add_review(necklace.id, "u1", 1)

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_range(self, shop, necklace, rating):
        with pytest.raises(ValidationError):
            shop.catalog.add_review(necklace.id, "u1", rating)

    def test_missing_product(self, shop):
        with pytest.raises(ProductNotFoundError):
            shop.catalog.add_review("nope", "u1", 3)


class TestCategories:
    def test_add_and_list_sorted(self, shop):
        shop.catalog.add_category("Rings")
        shop.catalog.add_category("Anklets & Toe Rings")
        categories = shop.catalog.list_categories()
        assert [c.slug for c in categories] == ["anklets-toe-rings", "rings"]

    def test_duplicate_slug(self, shop):
        shop.catalog.add_category("Rings")
        with pytest.raises(ValidationError, match="already exists"):
            shop.catalog.add_category("rings")

    def test_name_required(self, shop):
        with pytest.raises(ValidationError):
            shop.catalog.add_category("  ")


def test_unit_product_roundtrip(shop):
    unit = ProductUnit(unit_id="blue", price=12.0, stock=4, color="blue", images=["b.jpg"])
    product = shop.catalog.add_product(
        Product.create(name="Bead Strand", price=12.0, category="supplies", units=[unit])
    )
    assert shop.catalog.get_product(product.id).get_unit("blue") == unit
