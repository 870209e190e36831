"""Product catalog storage: products, reviews, and categories."""

import logging
from pathlib import Path
from typing import Any

from .document_store import DocumentStore
from .errors import (
    DuplicateReviewError,
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from .models import Category, Product, Review, SaleConfig, _generate_id, _utc_now
from .pricing import effective_price, sale_price
from .utils import paginate, round_money, slugify

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("price-low", "price-high", "rating", "newest", "featured")
SALE_TYPES = ("percentage", "amount")


def product_view(product: Product) -> dict[str, Any]:
    """Serialize a product with its computed sale and effective prices."""
    data = product.to_dict()
    data["salePrice"] = sale_price(product)
    data["effectivePrice"] = effective_price(product)
    data["totalStock"] = product.total_stock
    for unit_data, unit in zip(data["units"], product.units):
        unit_data["salePrice"] = sale_price(product, unit)
        unit_data["effectivePrice"] = effective_price(product, unit)
    return data


def _lowest_price(product: Product) -> float:
    if product.units:
        return min(effective_price(product, u) for u in product.units)
    return effective_price(product)


class Catalog:
    """Manages products, their reviews, and categories."""

    def __init__(self, data_dir: Path):
        self.products = DocumentStore("products", data_dir)
        self.reviews = DocumentStore("reviews", data_dir)
        self.categories = DocumentStore("categories", data_dir)

    # --- Products ---

    def get_product(self, product_id: str) -> Product:
        """
        Get a product by ID.

        Raises:
            ProductNotFoundError: If product doesn't exist.
        """
        data = self.products.get(product_id)
        if data is None:
            raise ProductNotFoundError(product_id)
        return Product.from_dict(data)

    def all_products(self) -> list[Product]:
        return [Product.from_dict(d) for d in self.products.list_all()]

    def list_products(
        self,
        category: str | None = None,
        featured: bool | None = None,
        search: str | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        sort_by: str = "newest",
        page: int = 1,
        limit: int = 12,
        include_inactive: bool = False,
    ) -> tuple[list[Product], dict[str, Any]]:
        """
        Filter, sort, and paginate the catalog.

        Price filters and price sorting use the lowest effective price across
        a product's units.

        Raises:
            ValidationError: If sort_by isn't a known option.
        """
        if sort_by not in SORT_OPTIONS:
            raise ValidationError(f"Invalid sort option: {sort_by}", field="sortBy")

        products = self.all_products()
        if not include_inactive:
            products = [p for p in products if p.is_active]
        if category:
            products = [p for p in products if p.category.lower() == category.lower()]
        if featured is not None:
            products = [p for p in products if p.featured == featured]
        if search:
            needle = search.lower()
            products = [
                p for p in products
                if needle in p.name.lower() or needle in p.description.lower()
            ]
        if min_price is not None:
            products = [p for p in products if _lowest_price(p) >= min_price]
        if max_price is not None:
            products = [p for p in products if _lowest_price(p) <= max_price]

        if sort_by == "price-low":
            products.sort(key=_lowest_price)
        elif sort_by == "price-high":
            products.sort(key=_lowest_price, reverse=True)
        elif sort_by == "rating":
            products.sort(key=lambda p: (p.rating, p.review_count), reverse=True)
        elif sort_by == "featured":
            products.sort(key=lambda p: p.created_at, reverse=True)
            products.sort(key=lambda p: p.featured, reverse=True)
        else:
            products.sort(key=lambda p: p.created_at, reverse=True)

        return paginate(products, page, limit)

    def add_product(self, product: Product) -> Product:
        if product.price < 0:
            raise ValidationError("Price must be zero or greater", field="price")
        with self.products.lock():
            self.products.write(product.id, product.to_dict())
        logger.info("Added product %s (%s)", product.name, product.id)
        return product

    def update_product(self, product: Product) -> Product:
        """
        Persist changes to an existing product.

        Raises:
            ProductNotFoundError: If product doesn't exist.
        """
        with self.products.lock():
            if not self.products.exists(product.id):
                raise ProductNotFoundError(product.id)
            product.updated_at = _utc_now()
            self.products.write(product.id, product.to_dict())
        return product

    def delete_product(self, product_id: str) -> None:
        with self.products.lock():
            if not self.products.delete(product_id):
                raise ProductNotFoundError(product_id)

    def bulk_update_prices(self, product_ids: list[str], price: float) -> int:
        """
        Set the list price of many products (and their units).

        Returns:
            Number of products updated.

        Raises:
            ValidationError: If price is negative.
        """
        if price < 0:
            raise ValidationError("Price must be zero or greater", field="price")
        price = round_money(price)
        updated = 0
        with self.products.lock():
            for product_id in product_ids:
                data = self.products.get(product_id)
                if data is None:
                    logger.warning("Bulk price update skipped missing product %s", product_id)
                    continue
                product = Product.from_dict(data)
                product.price = price
                for unit in product.units:
                    unit.price = price
                product.updated_at = _utc_now()
                self.products.write(product.id, product.to_dict())
                updated += 1
        return updated

    def bulk_sale(
        self,
        product_ids: list[str],
        action: str,
        sale_type: str | None = None,
        sale_value: float | None = None,
    ) -> int:
        """
        Put products on sale or take them off sale.

        Args:
            action: "setSale" or "removeSale".
            sale_type: "percentage" or "amount" (setSale only).
            sale_value: Percentage (0-100] or amount (> 0) (setSale only).

        Returns:
            Number of products updated.
        """
        if action == "setSale":
            if sale_type not in SALE_TYPES:
                raise ValidationError("Sale type must be 'percentage' or 'amount'", field="saleType")
            if sale_value is None or sale_value <= 0:
                raise ValidationError("Sale value must be greater than zero", field="saleValue")
            if sale_type == "percentage" and sale_value > 100:
                raise ValidationError("Percentage sale cannot exceed 100", field="saleValue")
        elif action != "removeSale":
            raise ValidationError(f"Invalid action: {action}", field="action")

        updated = 0
        with self.products.lock():
            for product_id in product_ids:
                data = self.products.get(product_id)
                if data is None:
                    continue
                product = Product.from_dict(data)
                if action == "setSale":
                    product.sale = SaleConfig(True, sale_type, float(sale_value))
                    for unit in product.units:
                        unit.sale = SaleConfig(True, sale_type, float(sale_value))
                else:
                    product.sale = None
                    for unit in product.units:
                        unit.sale = None
                product.updated_at = _utc_now()
                self.products.write(product.id, product.to_dict())
                updated += 1
        return updated

    def decrement_stock(self, product_id: str, unit_id: str | None, quantity: int) -> Product:
        """
        Remove sold units from stock.

        Raises:
            ProductNotFoundError: If the product or unit doesn't exist.
            InsufficientStockError: If stock would go negative.
        """
        with self.products.lock():
            product = self.get_product(product_id)
            if unit_id and product.units:
                unit = product.get_unit(unit_id)
                if unit is None:
                    raise ProductNotFoundError(product_id, unit_id)
                if unit.stock < quantity:
                    raise InsufficientStockError(product.name, unit.stock, quantity)
                unit.stock -= quantity
            else:
                if product.stock < quantity:
                    raise InsufficientStockError(product.name, product.stock, quantity)
                product.stock -= quantity
            product.updated_at = _utc_now()
            self.products.write(product.id, product.to_dict())
        return product

    # --- Reviews ---

    def add_review(
        self,
        product_id: str,
        user_id: str,
        rating: int,
        user_name: str = "",
        title: str = "",
        comment: str = "",
    ) -> Review:
        """
        Add a review and refresh the product's rating.

        Raises:
            ValidationError: If rating is outside 1-5.
            ProductNotFoundError: If product doesn't exist.
            DuplicateReviewError: If this user already reviewed the product.
        """
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", field="rating")

        review_id = f"{product_id}_{user_id}"
        with self.reviews.lock():
            product = self.get_product(product_id)
            if self.reviews.exists(review_id):
                raise DuplicateReviewError(product_id)
            review = Review(
                id=review_id,
                product_id=product_id,
                user_id=user_id,
                rating=rating,
                user_name=user_name,
                title=title,
                comment=comment,
            )
            self.reviews.write(review.id, review.to_dict())

            ratings = [r.rating for r in self.list_reviews(product_id)]
            product.rating = round(sum(ratings) / len(ratings), 1)
            product.review_count = len(ratings)
            self.update_product(product)
        return review

    def list_reviews(self, product_id: str) -> list[Review]:
        reviews = [
            Review.from_dict(d) for d in self.reviews.list_all() if d["productId"] == product_id
        ]
        reviews.sort(key=lambda r: r.created_at, reverse=True)
        return reviews

    # --- Categories ---

    def add_category(self, name: str, description: str = "") -> Category:
        slug = slugify(name)
        if not slug:
            raise ValidationError("Category name is required", field="name")
        with self.categories.lock():
            if any(c["slug"] == slug for c in self.categories.list_all()):
                raise ValidationError(f"Category already exists: {slug}", field="name")
            category = Category(id=_generate_id(), name=name, slug=slug, description=description)
            self.categories.write(category.id, category.to_dict())
        return category

    def list_categories(self) -> list[Category]:
        categories = [Category.from_dict(d) for d in self.categories.list_all()]
        categories.sort(key=lambda c: c.name.lower())
        return categories
