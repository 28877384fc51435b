# inventory_ledger/services/catalog_service.py
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_ledger.models import Product, DiscountType
from inventory_ledger.core.pricing import to_money, describe_discount
from inventory_ledger.exceptions import NotFoundError, ValidationError
from inventory_ledger.services.inventory_service import InventoryService
from inventory_ledger.utils.validation import (
    normalize_product_code, validate_product_code_format, require_positive_quantity
)
from inventory_ledger.logging_setup import get_logger

logger = get_logger('catalog')

ONLINE_LOCATION = 'ONLINE'

def validate_discount(discount_type, discount_value) -> Tuple[DiscountType, Decimal]:
    """Check a discount and return it as (DiscountType, two-place value).

    Raises:
        ValidationError for an unknown type, a non-positive value or a
        percentage above 100
    """
    try:
        kind = DiscountType(str(discount_type).upper())
    except ValueError:
        raise ValidationError(f"Invalid discount type: {discount_type}")

    value = to_money(discount_value)
    if value <= 0:
        raise ValidationError("Discount value must be greater than zero")
    if kind == DiscountType.PERCENTAGE and value > 100:
        raise ValidationError("Percentage discount cannot exceed 100")

    return kind, value

class CatalogService:
    """Product catalog: registration, pricing, discounts and storefront listings."""

    def __init__(self, session: Session):
        """Initialize the catalog service.

        Args:
            session: Database session
        """
        self.session = session
        self.inventory = InventoryService(session)

    def get_product(self, product_code: str, active_only: bool = True) -> Optional[Product]:
        """Get a product by code.

        Args:
            product_code: Product code (case-insensitive)
            active_only: Whether deactivated products are hidden

        Returns:
            Product object or None if not found
        """
        code = normalize_product_code(product_code)
        query = self.session.query(Product).filter(Product.product_code == code)

        if active_only:
            query = query.filter(Product.is_active == True)

        return query.first()

    def require_product(self, product_code: str, active_only: bool = True) -> Product:
        """Get a product by code or raise NotFoundError."""
        product = self.get_product(product_code, active_only=active_only)
        if product is None:
            code = normalize_product_code(product_code)
            raise NotFoundError(f"Product {code} not found", details={'product_code': code})
        return product

    def get_price(self, product_code: str) -> Decimal:
        """Final (discounted) price of an active product."""
        return self.require_product(product_code).final_price

    def register_product(
        self,
        product_code: str,
        product_name: str,
        base_price,
        category: Optional[str] = None,
        discount_type: Optional[str] = None,
        discount_value=None,
        stock_capacity: Optional[int] = None,
        unit_of_measure: str = 'each'
    ) -> int:
        """Register a product in the catalog.

        Args:
            product_code: Fixed-width product code, e.g. 'LA-SO-001'
            product_name: Product name
            base_price: Base price
            category: Optional category name
            discount_type: 'PERCENTAGE', 'AMOUNT' or None
            discount_value: Discount percentage or amount
            stock_capacity: Optional capacity used by the reorder advisor
            unit_of_measure: Unit of measure

        Returns:
            ID of the created product
        """
        code = validate_product_code_format(product_code)

        if not product_name or not product_name.strip():
            raise ValidationError("Product name is required")

        price = to_money(base_price)
        if price < 0:
            raise ValidationError("Base price cannot be negative", details={'base_price': str(price)})

        discount_enum, discount_amount = None, Decimal('0.00')
        if discount_type:
            discount_enum, discount_amount = validate_discount(discount_type, discount_value)

        if stock_capacity is not None and stock_capacity <= 0:
            raise ValidationError("Stock capacity must be greater than zero")

        if self.get_product(code, active_only=False):
            raise ValidationError(f"Product {code} already exists", details={'product_code': code})

        product = Product(
            product_code=code,
            product_name=product_name.strip(),
            category=category,
            base_price=price,
            discount_type=discount_enum,
            discount_value=discount_amount,
            stock_capacity=stock_capacity,
            unit_of_measure=unit_of_measure,
            is_active=True
        )
        self.session.add(product)

        try:
            self.session.flush()
            product_id = product.id
            final_price = product.final_price
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ValidationError(f"Product {code} already exists", details={'product_code': code})

        logger.info(f"Registered product {code} at {final_price}")
        return product_id

    def deactivate_product(self, product_code: str) -> None:
        """Deactivate a product. Products are never hard-deleted."""
        product = self.require_product(product_code, active_only=False)
        code = product.product_code
        product.is_active = False
        self.session.commit()
        logger.info(f"Deactivated product {code}")

    def product_summary(self, product_code: str) -> Dict:
        product = self.require_product(product_code, active_only=False)
        return {
            'product_code': product.product_code,
            'product_name': product.product_name,
            'category': product.category,
            'base_price': to_money(product.base_price),
            'final_price': product.final_price,
            'discount': describe_discount(product.discount_type, product.discount_value),
            'stock_capacity': product.stock_capacity,
            'is_active': product.is_active
        }

    def _apply_discount(self, product_code: str, discount_type: Optional[DiscountType],
                        discount_value: Decimal) -> Dict:
        product = self.require_product(product_code, active_only=False)
        code = product.product_code
        product.discount_type = discount_type
        product.discount_value = discount_value
        final_price = product.final_price
        self.session.commit()

        logger.info(
            f"Discount for {code} set to "
            f"{describe_discount(discount_type, discount_value) or 'none'}; price now {final_price}"
        )
        return self.product_summary(code)

    def set_percentage_discount(self, product_code: str, percentage) -> Dict:
        """Replace a product's discount with a percentage off (0 < p <= 100).

        Returns:
            The updated product summary
        """
        kind, value = validate_discount(DiscountType.PERCENTAGE.value, percentage)
        return self._apply_discount(product_code, kind, value)

    def set_fixed_discount(self, product_code: str, amount) -> Dict:
        """Replace a product's discount with a fixed amount off.

        An amount above the base price prices the product at zero.
        """
        kind, value = validate_discount(DiscountType.AMOUNT.value, amount)
        return self._apply_discount(product_code, kind, value)

    def remove_discount(self, product_code: str) -> Dict:
        return self._apply_discount(product_code, None, Decimal('0.00'))

    # Storefront queries: active products with ONLINE stock

    def _listing(self, product: Product, available: int) -> Dict:
        discount = describe_discount(product.discount_type, product.discount_value)
        return {
            'product_code': product.product_code,
            'product_name': product.product_name,
            'category': product.category,
            'unit_of_measure': product.unit_of_measure,
            'base_price': to_money(product.base_price),
            'final_price': product.final_price,
            'has_discount': discount is not None,
            'discount': discount,
            'available_quantity': available
        }

    def _in_stock_listings(self, query) -> List[Dict]:
        listings = []
        products = query.filter(Product.is_active == True).order_by(Product.product_name).all()

        for product in products:
            available = self.inventory.get_quantity(product.product_code, ONLINE_LOCATION)
            if available > 0:
                listings.append(self._listing(product, available))

        return listings

    def search_products(self, term: str) -> List[Dict]:
        """In-stock online products whose name, code or category contains the term.

        Args:
            term: Case-insensitive search text

        Returns:
            Listings ordered by product name
        """
        if term is None or not str(term).strip():
            raise ValidationError("Search term is required")

        pattern = f"%{str(term).strip().lower()}%"
        query = self.session.query(Product).filter(or_(
            func.lower(Product.product_name).like(pattern),
            func.lower(Product.product_code).like(pattern),
            func.lower(Product.category).like(pattern)
        ))
        return self._in_stock_listings(query)

    def get_products_by_category(self, category: str) -> List[Dict]:
        """In-stock online products in a category (case-insensitive)."""
        if category is None or not str(category).strip():
            raise ValidationError("Category is required")

        query = self.session.query(Product).filter(
            func.lower(Product.category) == str(category).strip().lower()
        )
        return self._in_stock_listings(query)

    def get_available_categories(self) -> List[str]:
        """Distinct categories of active products, alphabetically."""
        rows = self.session.query(Product.category).filter(
            Product.is_active == True,
            Product.category.isnot(None)
        ).distinct().order_by(Product.category).all()
        return [category for (category,) in rows]

    def check_availability(self, product_code: str, quantity: int) -> bool:
        """Whether an active product has at least ``quantity`` units online."""
        require_positive_quantity(quantity)
        product = self.get_product(product_code)
        if product is None:
            return False
        return self.inventory.get_quantity(product.product_code, ONLINE_LOCATION) >= quantity

    def get_featured_products(self, limit: int = 5) -> List[Dict]:
        """In-stock online products with the largest saving first, then by name."""
        require_positive_quantity(limit, 'limit')
        listings = self._in_stock_listings(self.session.query(Product))
        listings.sort(key=lambda item: (item['final_price'] - item['base_price'], item['product_name']))
        return listings[:limit]
