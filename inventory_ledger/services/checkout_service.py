# inventory_ledger/services/checkout_service.py
from datetime import datetime
from decimal import Decimal
import random
import time
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from inventory_ledger.config import config
from inventory_ledger.cart import Cart, CartStore, cart_store as default_cart_store
from inventory_ledger.core.pricing import calculate_line_total, to_money
from inventory_ledger.models import SalesOrder, SalesOrderItem, MovementType
from inventory_ledger.exceptions import (
    LedgerError, ValidationError, EmptyCartError, OutOfStockError,
    InsufficientStockError, TransactionFailedError, CheckoutTimeoutError
)
from inventory_ledger.services.catalog_service import CatalogService
from inventory_ledger.services.inventory_service import InventoryService
from inventory_ledger.services.movement_service import record_movement
from inventory_ledger.utils.validation import normalize_customer_info, validate_customer_info
from inventory_ledger.logging_setup import get_logger, log_exception

logger = get_logger('checkout')

ONLINE_LOCATION = 'ONLINE'
ONLINE_CHANNEL = 'ONLINE'

class CheckoutService:
    """Turns a cart into a sales order in a single transaction.

    Either the order, its items, the ONLINE stock decrements and the audit
    rows are all committed and the cart is cleared, or nothing changes.
    """

    def __init__(
        self,
        session: Session,
        cart_store: Optional[CartStore] = None,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize the checkout service.

        Args:
            session: Database session
            cart_store: Cart store; defaults to the process-wide store
            timeout_seconds: Hard deadline for one checkout; defaults to
                BUSINESS_RULES.checkout_timeout_seconds
            clock: Monotonic time source
        """
        self.session = session
        self.cart_store = cart_store if cart_store is not None else default_cart_store
        self.catalog = CatalogService(session)
        self.inventory = InventoryService(session)

        if timeout_seconds is None:
            timeout_seconds = config.business_rules['checkout_timeout_seconds']
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    def checkout(self, session_id: str, customer_info: Dict) -> Dict:
        """Check out a session's cart.

        Args:
            session_id: Session ID
            customer_info: Dictionary with name, email, phone and optional address

        Returns:
            Dictionary with the order code, totals and lines
        """
        errors = validate_customer_info(customer_info)
        if errors:
            raise ValidationError("Customer information is incomplete", details=errors)
        customer = normalize_customer_info(customer_info)

        cart = self.cart_store.get(session_id)
        if cart is None or cart.is_empty():
            raise EmptyCartError(details={'session_id': session_id})

        deadline = self._clock() + self.timeout_seconds

        with cart.lock:
            if cart.is_empty():
                raise EmptyCartError(details={'session_id': session_id})

            try:
                result = self._place_order(cart, customer, deadline)
            except LedgerError as e:
                self.session.rollback()
                logger.warning(f"Checkout for session {session_id} rolled back: {e}")
                raise
            except Exception as e:
                self.session.rollback()
                log_exception('checkout', e, f"Checkout for session {session_id} failed")
                raise TransactionFailedError(
                    f"Checkout failed: {str(e)}",
                    details={'session_id': session_id}
                ) from e

            cart.clear()

        logger.info(
            f"Order {result['order_code']} placed for session {session_id}: "
            f"{result['item_count']} lines, total {result['final_total']}"
        )
        return result

    def _check_deadline(self, deadline: float, step: str):
        if self._clock() >= deadline:
            raise CheckoutTimeoutError(
                f"Checkout exceeded {self.timeout_seconds}s before {step}",
                details={'step': step, 'timeout_seconds': self.timeout_seconds}
            )

    def _revalidate_stock(self, cart: Cart):
        for item in cart.items:
            product = self.catalog.get_product(item.product_code)
            available = 0 if product is None else self.inventory.get_quantity(
                item.product_code, ONLINE_LOCATION
            )

            if available < item.quantity:
                raise OutOfStockError(
                    f"Insufficient stock for {item.product_name} ({item.product_code}): "
                    f"requested {item.quantity}, available {available}",
                    product_code=item.product_code,
                    location_code=ONLINE_LOCATION,
                    requested=item.quantity,
                    available=available
                )

    def generate_order_code(self) -> str:
        """Order code ON-<epoch ms>-<4 digits>, unique in the store."""
        while True:
            code = f"ON-{int(time.time() * 1000)}-{random.randint(0, 9999):04d}"
            exists = self.session.query(SalesOrder.id).filter(
                SalesOrder.order_code == code
            ).first()
            if not exists:
                return code

    def _place_order(self, cart: Cart, customer: Dict, deadline: float) -> Dict:
        self._revalidate_stock(cart)

        self._check_deadline(deadline, 'creating the order')
        order_code = self.generate_order_code()
        items = cart.items

        lines = []
        subtotal = Decimal('0.00')
        for item in items:
            line_total = calculate_line_total(item.unit_price, item.quantity)
            subtotal += line_total
            lines.append((item, line_total))

        subtotal = to_money(subtotal)
        total_discount = Decimal('0.00')
        final_total = subtotal - total_discount

        order = SalesOrder(
            order_code=order_code,
            sales_channel=ONLINE_CHANNEL,
            customer_name=customer['name'],
            customer_email=customer['email'],
            customer_phone=customer['phone'],
            delivery_address=customer['address'],
            subtotal=subtotal,
            total_discount=total_discount,
            final_total=final_total,
            order_date=datetime.now()
        )
        self.session.add(order)
        self.session.flush()

        for item, line_total in lines:
            self._check_deadline(deadline, f"writing {item.product_code}")

            product = self.catalog.require_product(item.product_code)
            self.session.add(SalesOrderItem(
                order_id=order.id,
                product_id=product.id,
                product_code=product.product_code,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=line_total
            ))

            try:
                self.inventory._reduce(product.product_code, ONLINE_LOCATION, item.quantity)
            except InsufficientStockError as e:
                raise OutOfStockError(
                    f"{item.product_name} ({item.product_code}) sold out during checkout",
                    product_code=item.product_code,
                    location_code=ONLINE_LOCATION,
                    requested=item.quantity,
                    available=e.available
                ) from e

            record_movement(
                self.session, product.product_code, MovementType.STOCK_OUT, item.quantity,
                from_location=ONLINE_LOCATION, reason='Online sale', reference=order_code
            )

        self._check_deadline(deadline, 'commit')
        order_id = order.id
        order_date = order.order_date
        self.session.commit()

        return {
            'success': True,
            'order_id': order_id,
            'order_code': order_code,
            'order_date': order_date,
            'customer_name': customer['name'],
            'item_count': len(lines),
            'lines': [
                {
                    'product_code': item.product_code,
                    'product_name': item.product_name,
                    'quantity': item.quantity,
                    'unit_price': item.unit_price,
                    'line_total': line_total
                }
                for item, line_total in lines
            ],
            'subtotal': subtotal,
            'total_discount': total_discount,
            'final_total': final_total
        }
