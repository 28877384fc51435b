# inventory_ledger/services/cart_service.py
from typing import Dict, Optional

from sqlalchemy.orm import Session

from inventory_ledger.cart import Cart, CartItem, CartStore, cart_store as default_cart_store
from inventory_ledger.exceptions import (
    NotFoundError, OutOfStockError, EmptyCartError, ValidationError
)
from inventory_ledger.services.catalog_service import CatalogService
from inventory_ledger.services.inventory_service import InventoryService
from inventory_ledger.utils.validation import normalize_product_code, require_positive_quantity
from inventory_ledger.logging_setup import get_logger

logger = get_logger('cart')

ONLINE_LOCATION = 'ONLINE'

class ShoppingCartService:
    """Cart operations checked against online stock."""

    def __init__(self, session: Session, cart_store: Optional[CartStore] = None):
        """Initialize the shopping cart service.

        Args:
            session: Database session
            cart_store: Cart store; defaults to the process-wide store
        """
        self.session = session
        self.cart_store = cart_store if cart_store is not None else default_cart_store
        self.catalog = CatalogService(session)
        self.inventory = InventoryService(session)

    def online_available(self, product_code: str) -> int:
        return self.inventory.get_quantity(product_code, ONLINE_LOCATION)

    def get_cart(self, session_id: str) -> Cart:
        """Get the session's cart, creating it on first access."""
        return self.cart_store.get_or_create(session_id)

    def add_to_cart(self, session_id: str, product_code: str, quantity: int) -> Cart:
        """Add a product to the cart.

        Args:
            session_id: Session ID
            product_code: Product code
            quantity: Units to add

        Returns:
            The updated cart
        """
        require_positive_quantity(quantity)
        product = self.catalog.require_product(product_code)
        cart = self.get_cart(session_id)

        with cart.lock:
            existing = cart.get_item(product.product_code)
            in_cart = existing.quantity if existing else 0
            wanted = in_cart + quantity
            available = self.online_available(product.product_code)

            if available < wanted:
                logger.warning(
                    f"Cart {session_id}: {product.product_code} requested {wanted}, "
                    f"{available} available online"
                )
                raise OutOfStockError(
                    f"Only {available} of {product.product_code} available online "
                    f"({in_cart} already in cart)",
                    product_code=product.product_code,
                    location_code=ONLINE_LOCATION,
                    requested=wanted,
                    available=available
                )

            cart.add_item(CartItem(
                product.product_code,
                product.product_name,
                product.final_price,
                quantity,
                product.unit_of_measure or 'each'
            ))

        logger.info(f"Cart {session_id}: added {quantity} {product.product_code}")
        return cart

    def update_cart_item(self, session_id: str, product_code: str, quantity: int) -> Cart:
        """Set the quantity of a cart line; zero or less removes it."""
        code = normalize_product_code(product_code)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("quantity must be a whole number", details={'quantity': quantity})

        cart = self.get_cart(session_id)

        with cart.lock:
            if cart.get_item(code) is None:
                raise NotFoundError(
                    f"Product {code} is not in the cart",
                    details={'product_code': code, 'session_id': session_id}
                )

            if quantity > 0:
                available = self.online_available(code)
                if available < quantity:
                    raise OutOfStockError(
                        f"Only {available} of {code} available online",
                        product_code=code,
                        location_code=ONLINE_LOCATION,
                        requested=quantity,
                        available=available
                    )

            cart.update_item_quantity(code, quantity)

        logger.info(f"Cart {session_id}: set {code} to {quantity}")
        return cart

    def remove_from_cart(self, session_id: str, product_code: str) -> bool:
        code = normalize_product_code(product_code)
        removed = self.get_cart(session_id).remove_item(code)
        if removed:
            logger.info(f"Cart {session_id}: removed {code}")
        return removed

    def clear_cart(self, session_id: str) -> None:
        self.get_cart(session_id).clear()
        logger.info(f"Cart {session_id}: cleared")

    def validate_cart(self, session_id: str) -> Dict:
        """Re-check every cart line against current online stock.

        Returns:
            Dictionary with 'valid', 'issues' and the cart contents
        """
        cart = self.get_cart(session_id)

        with cart.lock:
            if cart.is_empty():
                raise EmptyCartError(details={'session_id': session_id})

            issues = []
            for item in cart.items:
                product = self.catalog.get_product(item.product_code)
                if product is None:
                    issues.append({
                        'product_code': item.product_code,
                        'issue': 'Product is no longer available',
                        'requested': item.quantity,
                        'available': 0
                    })
                    continue

                available = self.online_available(item.product_code)
                if available < item.quantity:
                    issues.append({
                        'product_code': item.product_code,
                        'issue': f"Only {available} available online",
                        'requested': item.quantity,
                        'available': available
                    })

            return {
                'valid': not issues,
                'issues': issues,
                'cart': cart.to_dict()
            }
