"""
Tests for cart operations and checkout.
"""
import re
import threading
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import OperationalError

from inventory_ledger.cart import CartStore
from inventory_ledger.db import db
from inventory_ledger.exceptions import (
    ValidationError, NotFoundError, OutOfStockError, EmptyCartError,
    CheckoutTimeoutError, TransactionFailedError
)
from inventory_ledger.models import SalesOrder, SalesOrderItem, InventoryMovement, MovementType
from inventory_ledger.services.batch_service import BatchService
from inventory_ledger.services.cart_service import ShoppingCartService
from inventory_ledger.services.checkout_service import CheckoutService
from inventory_ledger.services.catalog_service import CatalogService
from inventory_ledger.services.inventory_service import InventoryService
from inventory_ledger.services.movement_service import MovementService
from inventory_ledger.services.sales_history_service import SalesHistoryService
from inventory_ledger.tests.base import LedgerTestCase

CUSTOMER = {
    'name': 'Ana Perera',
    'email': 'ana@example.com',
    'phone': '0771234567',
    'address': '12 Lake Road'
}


class TestShoppingCartService(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.add_product('LA-SO-001', price='4.50')
        self.add_product('BA-SH-002', name='Bath Salts', price='10.00',
                         discount_type='PERCENTAGE', discount_value='20')
        self.store = CartStore(ttl_seconds=3600)
        self.carts = ShoppingCartService(self.session, cart_store=self.store)

    def test_add_to_cart_uses_final_price(self):
        self.receive('BA-SH-002', ONLINE=5)

        cart = self.carts.add_to_cart('s1', 'ba-sh-002', 2)

        item = cart.get_item('BA-SH-002')
        self.assertEqual(item.unit_price, Decimal('8.00'))
        self.assertEqual(cart.subtotal, Decimal('16.00'))
        self.assertEqual(cart.final_total, Decimal('16.00'))

    def test_cumulative_quantity_checked_against_stock(self):
        """add 2 then add 2 with 3 available: the second add fails and the cart keeps 2."""
        self.receive('LA-SO-001', ONLINE=3)

        self.carts.add_to_cart('s1', 'LA-SO-001', 2)
        with self.assertRaises(OutOfStockError) as ctx:
            self.carts.add_to_cart('s1', 'LA-SO-001', 2)

        self.assertEqual(ctx.exception.requested, 4)
        self.assertEqual(ctx.exception.available, 3)
        self.assertEqual(self.carts.get_cart('s1').get_item('LA-SO-001').quantity, 2)

    def test_only_online_stock_counts(self):
        self.receive('LA-SO-001', WAREHOUSE=100, SHELF=20)

        with self.assertRaises(OutOfStockError):
            self.carts.add_to_cart('s1', 'LA-SO-001', 1)

    def test_add_to_cart_validation(self):
        with self.assertRaises(ValidationError):
            self.carts.add_to_cart('s1', 'LA-SO-001', 0)
        with self.assertRaises(NotFoundError):
            self.carts.add_to_cart('s1', 'ZZ-ZZ-999', 1)

        CatalogService(self.session).deactivate_product('LA-SO-001')
        with self.assertRaises(NotFoundError):
            self.carts.add_to_cart('s1', 'LA-SO-001', 1)

    def test_update_cart_item(self):
        self.receive('LA-SO-001', ONLINE=5)
        self.carts.add_to_cart('s1', 'LA-SO-001', 1)

        cart = self.carts.update_cart_item('s1', 'LA-SO-001', 5)
        self.assertEqual(cart.subtotal, Decimal('22.50'))

        with self.assertRaises(OutOfStockError):
            self.carts.update_cart_item('s1', 'LA-SO-001', 6)
        self.assertEqual(cart.get_item('LA-SO-001').quantity, 5)

        with self.assertRaises(NotFoundError):
            self.carts.update_cart_item('s1', 'BA-SH-002', 1)

        self.carts.update_cart_item('s1', 'LA-SO-001', 0)
        self.assertTrue(cart.is_empty())

    def test_remove_and_clear(self):
        self.receive('LA-SO-001', ONLINE=5)
        self.receive('BA-SH-002', ONLINE=5)
        self.carts.add_to_cart('s1', 'LA-SO-001', 1)
        self.carts.add_to_cart('s1', 'BA-SH-002', 1)

        self.assertTrue(self.carts.remove_from_cart('s1', 'la-so-001'))
        self.assertFalse(self.carts.remove_from_cart('s1', 'LA-SO-001'))
        self.assertEqual(self.carts.get_cart('s1').item_count, 1)

        self.carts.clear_cart('s1')
        self.assertTrue(self.carts.get_cart('s1').is_empty())

    def test_validate_cart_reports_stock_changes(self):
        self.receive('LA-SO-001', ONLINE=5)
        self.carts.add_to_cart('s1', 'LA-SO-001', 4)

        self.assertTrue(self.carts.validate_cart('s1')['valid'])

        MovementService(self.session).adjust('LA-SO-001', 'ONLINE', -2)
        result = self.carts.validate_cart('s1')

        self.assertFalse(result['valid'])
        self.assertEqual(result['issues'][0]['available'], 3)

    def test_validate_empty_cart(self):
        with self.assertRaises(EmptyCartError):
            self.carts.validate_cart('s1')


class TestCheckoutService(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.add_product('LA-SO-001', price='4.50')
        self.store = CartStore(ttl_seconds=3600)
        self.carts = ShoppingCartService(self.session, cart_store=self.store)

    def checkout_service(self, **kwargs):
        return CheckoutService(self.session, cart_store=self.store, **kwargs)

    def test_checkout_sells_last_units(self):
        """cart of 3 with 3 online: online stock drops to 0 and total is 3 x price."""
        self.receive('LA-SO-001', ONLINE=3, WAREHOUSE=10)
        self.carts.add_to_cart('s1', 'LA-SO-001', 3)

        result = self.checkout_service().checkout('s1', CUSTOMER)

        self.assertTrue(result['success'])
        self.assertRegex(result['order_code'], r'^ON-\d{13}-\d{4}$')
        self.assertEqual(result['final_total'], Decimal('13.50'))
        self.assertEqual(self.quantity('LA-SO-001', 'ONLINE'), 0)
        self.assertEqual(self.quantity('LA-SO-001', 'WAREHOUSE'), 10)
        self.assertTrue(self.store.get('s1').is_empty())

        order = self.session.query(SalesOrder).filter(
            SalesOrder.order_code == result['order_code']
        ).one()
        self.assertEqual(order.final_total, Decimal('13.50'))
        self.assertEqual(order.customer_email, 'ana@example.com')
        self.assertEqual(
            sum(item.line_total for item in order.items), order.subtotal
        )

        movement = self.session.query(InventoryMovement).filter(
            InventoryMovement.movement_type == MovementType.STOCK_OUT
        ).one()
        self.assertEqual(movement.reference, result['order_code'])
        self.assertEqual(movement.quantity, 3)

        velocity = SalesHistoryService(self.session).get_velocity('LA-SO-001')
        self.assertEqual(velocity, {'transaction_count': 1, 'units_sold': 3})

    def test_checkout_revalidates_stock(self):
        """cart of 5 when only 3 remain online: fails and changes nothing."""
        self.receive('LA-SO-001', ONLINE=5)
        self.carts.add_to_cart('s1', 'LA-SO-001', 5)
        MovementService(self.session).adjust('LA-SO-001', 'ONLINE', -2)

        with self.assertRaises(OutOfStockError) as ctx:
            self.checkout_service().checkout('s1', CUSTOMER)

        self.assertEqual(ctx.exception.product_code, 'LA-SO-001')
        self.assertEqual(ctx.exception.available, 3)
        self.assertEqual(self.quantity('LA-SO-001', 'ONLINE'), 3)
        self.assertEqual(self.store.get('s1').get_item('LA-SO-001').quantity, 5)
        self.assertEqual(self.session.query(SalesOrder).count(), 0)

    def test_checkout_requires_customer_info(self):
        self.receive('LA-SO-001', ONLINE=3)
        self.carts.add_to_cart('s1', 'LA-SO-001', 1)

        with self.assertRaises(ValidationError) as ctx:
            self.checkout_service().checkout('s1', {'name': 'Ana', 'email': 'ana@', 'phone': ''})

        self.assertIn('email', ctx.exception.details)
        self.assertIn('phone', ctx.exception.details)
        self.assertEqual(self.store.get('s1').item_count, 1)

    def test_checkout_empty_cart(self):
        with self.assertRaises(EmptyCartError):
            self.checkout_service().checkout('nobody', CUSTOMER)

        self.store.get_or_create('s1')
        with self.assertRaises(EmptyCartError):
            self.checkout_service().checkout('s1', CUSTOMER)

    def test_timeout_rolls_back(self):
        self.receive('LA-SO-001', ONLINE=3)
        self.carts.add_to_cart('s1', 'LA-SO-001', 2)

        with self.assertRaises(CheckoutTimeoutError):
            self.checkout_service(timeout_seconds=0).checkout('s1', CUSTOMER)

        self.assertEqual(self.quantity('LA-SO-001', 'ONLINE'), 3)
        self.assertEqual(self.store.get('s1').get_item('LA-SO-001').quantity, 2)
        self.assertEqual(self.session.query(SalesOrder).count(), 0)

    def test_timeout_after_order_written_rolls_back(self):
        self.receive('LA-SO-001', ONLINE=3)
        self.carts.add_to_cart('s1', 'LA-SO-001', 2)
        # deadline at 30, order creation at 0, first item write at 100
        clock = MagicMock(side_effect=[0.0, 0.0, 100.0])

        with self.assertRaises(CheckoutTimeoutError):
            self.checkout_service(timeout_seconds=30, clock=clock).checkout('s1', CUSTOMER)

        self.assertEqual(self.session.query(SalesOrder).count(), 0)
        self.assertEqual(self.session.query(SalesOrderItem).count(), 0)
        self.assertEqual(self.quantity('LA-SO-001', 'ONLINE'), 3)
        self.assertFalse(self.store.get('s1').is_empty())

    def test_storage_failure_surfaces_as_transaction_failed(self):
        self.receive('LA-SO-001', ONLINE=3)
        self.carts.add_to_cart('s1', 'LA-SO-001', 1)
        service = self.checkout_service()

        with patch.object(service.inventory, '_reduce',
                          side_effect=OperationalError('UPDATE', {}, Exception('disk I/O error'))):
            with self.assertRaises(TransactionFailedError):
                service.checkout('s1', CUSTOMER)

        self.assertEqual(self.quantity('LA-SO-001', 'ONLINE'), 3)
        self.assertEqual(self.session.query(SalesOrder).count(), 0)
        self.assertEqual(self.store.get('s1').item_count, 1)

    def test_non_string_customer_fields_are_stored_as_text(self):
        self.receive('LA-SO-001', ONLINE=3)
        self.carts.add_to_cart('s1', 'LA-SO-001', 1)
        customer = {'name': 1024, 'email': ' ana@example.com ', 'phone': 771234567, 'address': '  '}

        result = self.checkout_service().checkout('s1', customer)

        order = self.session.query(SalesOrder).filter(
            SalesOrder.order_code == result['order_code']
        ).one()
        self.assertEqual(result['customer_name'], '1024')
        self.assertEqual(
            (order.customer_name, order.customer_email, order.customer_phone),
            ('1024', 'ana@example.com', '771234567')
        )
        self.assertIsNone(order.delivery_address)

    def test_racing_checkouts_sell_available_stock_once(self):
        """three carts of 2 against 3 online units: one order, two sold out, 1 unit left."""
        self.receive('LA-SO-001', ONLINE=3)
        sessions = ['s1', 's2', 's3']
        for session_id in sessions:
            self.carts.add_to_cart(session_id, 'LA-SO-001', 2)
        self.release()

        barrier = threading.Barrier(len(sessions))
        outcomes = {}
        lock = threading.Lock()

        def worker(session_id):
            session = db.new_session()
            try:
                barrier.wait()
                CheckoutService(session, cart_store=self.store).checkout(session_id, CUSTOMER)
                result = 'ok'
            except OutOfStockError:
                result = 'sold out'
            finally:
                session.close()
            with lock:
                outcomes[session_id] = result

        threads = [threading.Thread(target=worker, args=(sid,)) for sid in sessions]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(outcomes.values()), ['ok', 'sold out', 'sold out'])
        self.assertEqual(self.quantity('LA-SO-001', 'ONLINE'), 1)
        self.assertEqual(self.session.query(SalesOrder).count(), 1)
        for session_id, outcome in outcomes.items():
            expected = 0 if outcome == 'ok' else 2
            self.assertEqual(self.store.get(session_id).total_quantity, expected)

    def test_order_codes_are_unique(self):
        service = self.checkout_service()
        codes = {service.generate_order_code() for _ in range(20)}
        self.assertEqual(len(codes), 20)
        self.assertTrue(all(re.match(r'^ON-\d+-\d{4}$', code) for code in codes))


class TestStockConservation(LedgerTestCase):

    def test_locations_sum_to_received_less_sold_and_scrapped(self):
        self.add_product('LA-SO-001', price='4.50')
        store = CartStore(ttl_seconds=3600)
        movements = MovementService(self.session)

        self.receive('LA-SO-001', WAREHOUSE=30, SHELF=10, ONLINE=10)
        self.receive('LA-SO-001', WAREHOUSE=20)
        movements.transfer('LA-SO-001', 'WAREHOUSE', 'ONLINE', 15)
        movements.transfer('LA-SO-001', 'WAREHOUSE', 'SHELF', 5)
        movements.adjust('LA-SO-001', 'SHELF', -3, reason='damaged')
        movements.adjust('LA-SO-001', 'ONLINE', -1, reason='expired')

        ShoppingCartService(self.session, cart_store=store).add_to_cart('s1', 'LA-SO-001', 4)
        CheckoutService(self.session, cart_store=store).checkout('s1', CUSTOMER)

        received = BatchService(self.session).total_received('LA-SO-001')
        sold = sum(item.quantity for item in self.session.query(SalesOrderItem).all())
        scrapped = sum(
            m.quantity for m in self.session.query(InventoryMovement).filter(
                InventoryMovement.movement_type == MovementType.ADJUSTMENT,
                InventoryMovement.from_location.isnot(None)
            ).all()
        )
        on_hand = InventoryService(self.session).get_total_quantity('LA-SO-001')

        self.assertEqual((received, sold, scrapped), (70, 4, 4))
        self.assertEqual(on_hand, received - sold - scrapped)
        self.assertEqual(
            sum(InventoryService(self.session).get_quantity_by_location('LA-SO-001').values()),
            on_hand
        )


if __name__ == '__main__':
    unittest.main()
