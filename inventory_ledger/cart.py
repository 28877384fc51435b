# inventory_ledger/cart.py
from collections import OrderedDict
from decimal import Decimal
import threading
import time
from typing import Callable, Dict, List, Optional

from inventory_ledger.config import config
from inventory_ledger.core.pricing import to_money, calculate_line_total
from inventory_ledger.exceptions import ValidationError
from inventory_ledger.logging_setup import get_logger

logger = get_logger('cart')

class CartItem:
    """One product line in a cart with a price snapshot."""

    def __init__(self, product_code: str, product_name: str, unit_price,
                 quantity: int, unit_of_measure: str = 'each'):
        self.product_code = product_code
        self.product_name = product_name
        self.unit_price = to_money(unit_price)
        self.unit_of_measure = unit_of_measure
        self._quantity = 0
        self.line_total = Decimal('0.00')
        self.quantity = quantity

    @property
    def quantity(self) -> int:
        return self._quantity

    @quantity.setter
    def quantity(self, value: int):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(
                "Cart quantity must be a whole number greater than zero",
                details={'product_code': self.product_code, 'quantity': value}
            )
        self._quantity = value
        self.line_total = calculate_line_total(self.unit_price, value)

    def to_dict(self) -> Dict:
        return {
            'product_code': self.product_code,
            'product_name': self.product_name,
            'unit_price': self.unit_price,
            'quantity': self.quantity,
            'unit_of_measure': self.unit_of_measure,
            'line_total': self.line_total
        }

class Cart:
    """Shopping cart for one session.

    Callers that check stock and then mutate hold ``lock`` for the whole
    sequence; the lock is re-entrant so the cart's own methods can take it too.
    """

    def __init__(self, session_id: str, clock: Callable[[], float] = time.time):
        self.session_id = session_id
        self.lock = threading.RLock()
        self._items = OrderedDict()
        self._clock = clock
        self.subtotal = Decimal('0.00')
        self.total_discount = Decimal('0.00')
        self.final_total = Decimal('0.00')
        self.last_accessed = clock()

    def touch(self):
        self.last_accessed = self._clock()

    @property
    def items(self) -> List[CartItem]:
        with self.lock:
            return list(self._items.values())

    def get_item(self, product_code: str) -> Optional[CartItem]:
        with self.lock:
            return self._items.get(product_code)

    def add_item(self, item: CartItem) -> CartItem:
        """Add a line, merging quantity into an existing line for the product."""
        with self.lock:
            existing = self._items.get(item.product_code)
            if existing is not None:
                existing.quantity = existing.quantity + item.quantity
                item = existing
            else:
                self._items[item.product_code] = item
            self._recalculate_totals()
            return item

    def update_item_quantity(self, product_code: str, quantity: int) -> bool:
        """Set a line's quantity; zero or less removes the line.

        Returns:
            False if the product is not in the cart
        """
        with self.lock:
            item = self._items.get(product_code)
            if item is None:
                return False
            if quantity <= 0:
                del self._items[product_code]
            else:
                item.quantity = quantity
            self._recalculate_totals()
            return True

    def remove_item(self, product_code: str) -> bool:
        with self.lock:
            removed = self._items.pop(product_code, None) is not None
            self._recalculate_totals()
            return removed

    def clear(self):
        with self.lock:
            self._items.clear()
            self._recalculate_totals()

    def is_empty(self) -> bool:
        with self.lock:
            return not self._items

    @property
    def item_count(self) -> int:
        """Number of distinct products."""
        with self.lock:
            return len(self._items)

    @property
    def total_quantity(self) -> int:
        with self.lock:
            return sum(item.quantity for item in self._items.values())

    def _recalculate_totals(self):
        self.subtotal = to_money(sum(
            (item.line_total for item in self._items.values()), Decimal('0.00')
        ))
        # Promotions are priced into the unit price; cart-level discounts are not applied.
        self.total_discount = Decimal('0.00')
        self.final_total = self.subtotal - self.total_discount
        self.touch()

    def to_dict(self) -> Dict:
        with self.lock:
            return {
                'session_id': self.session_id,
                'items': [item.to_dict() for item in self._items.values()],
                'item_count': len(self._items),
                'total_quantity': sum(item.quantity for item in self._items.values()),
                'subtotal': self.subtotal,
                'total_discount': self.total_discount,
                'final_total': self.final_total
            }

class CartStore:
    """Thread-safe map of session ID to cart with a time-to-live.

    Expired carts are dropped lazily on lookup and by a sweep that
    ``get_or_create`` runs at most once per sweep interval, so carts of
    abandoned sessions do not accumulate.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: Optional[float] = None
    ):
        """Initialize the cart store.

        Args:
            ttl_seconds: Idle time after which a cart expires; defaults to CART.ttl_minutes
            clock: Time source, in seconds
            sweep_interval_seconds: Minimum time between automatic sweeps;
                defaults to CART.sweep_interval_seconds
        """
        cart_settings = config.cart_config
        if ttl_seconds is None:
            ttl_seconds = cart_settings['ttl_minutes'] * 60
        if sweep_interval_seconds is None:
            sweep_interval_seconds = cart_settings['sweep_interval_seconds']

        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._carts = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _expired(self, cart: Cart, now: float) -> bool:
        return self.ttl_seconds > 0 and now - cart.last_accessed > self.ttl_seconds

    def _sweep(self, now: float) -> int:
        # Caller holds self._lock
        expired = [sid for sid, cart in self._carts.items() if self._expired(cart, now)]
        for session_id in expired:
            del self._carts[session_id]

        self._last_sweep = now
        if expired:
            logger.info(f"Swept {len(expired)} expired carts, {len(self._carts)} remaining")
        return len(expired)

    def get_or_create(self, session_id: str) -> Cart:
        if not session_id:
            raise ValidationError("Session ID is required")

        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.sweep_interval_seconds:
                self._sweep(now)

            cart = self._carts.get(session_id)
            if cart is None or self._expired(cart, now):
                cart = Cart(session_id, clock=self._clock)
                self._carts[session_id] = cart
                logger.debug(f"Created cart for session {session_id}")
            else:
                cart.touch()
            return cart

    def get(self, session_id: str) -> Optional[Cart]:
        """Existing, unexpired cart for a session, or None."""
        with self._lock:
            cart = self._carts.get(session_id)
            if cart is None:
                return None
            if self._expired(cart, self._clock()):
                del self._carts[session_id]
                return None
            cart.touch()
            return cart

    def sweep_expired(self) -> int:
        """Drop expired carts now.

        Returns:
            Number of carts removed
        """
        with self._lock:
            return self._sweep(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._carts)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._carts

# Process-wide cart store
cart_store = CartStore()
