"""
Shared fixture for tests that run against a temporary SQLite database.
"""
import os
import shutil
import tempfile
import unittest
import uuid
from datetime import datetime, timedelta

from inventory_ledger.db import db
from inventory_ledger.core.pricing import calculate_line_total
from inventory_ledger.models import SalesOrder, SalesOrderItem
from inventory_ledger.services.catalog_service import CatalogService
from inventory_ledger.services.inventory_service import InventoryService
from inventory_ledger.services.location_service import LocationService
from inventory_ledger.services.movement_service import MovementService


class LedgerTestCase(unittest.TestCase):
    """Creates a fresh database with the three locations for every test."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp(prefix='ledger-test-')
        db.initialize(f"sqlite:///{os.path.join(self.tmpdir, 'ledger.db')}")
        db.create_all_tables()

        self.session = db.new_session()
        LocationService(self.session).seed_default_locations()

    def tearDown(self):
        self.session.close()
        db.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def release(self):
        """End the test session's open transaction so other sessions can write."""
        self.session.commit()

    def add_product(self, product_code='LA-SO-001', name='Lavender Soap', price='4.50', **kwargs):
        CatalogService(self.session).register_product(product_code, name, price, **kwargs)
        return product_code

    def receive(self, product_code, expiry_date=None, unit_cost='1.00', **allocations):
        result = MovementService(self.session).receive_stock(
            product_code, unit_cost, allocations, expiry_date=expiry_date
        )
        return result['batch_id']

    def quantity(self, product_code, location_code):
        qty = InventoryService(self.session).get_quantity(product_code, location_code)
        self.release()
        return qty

    def record_sales(self, product_code, count, units_each, days_ago=1):
        """Insert completed in-store sales lines for velocity tests."""
        product = CatalogService(self.session).require_product(product_code)
        order_date = datetime.now() - timedelta(days=days_ago)

        for _ in range(count):
            line_total = calculate_line_total(product.final_price, units_each)
            order = SalesOrder(
                order_code=f"IS-{uuid.uuid4().hex[:12]}",
                sales_channel='IN_STORE',
                subtotal=line_total,
                final_total=line_total,
                order_date=order_date
            )
            self.session.add(order)
            self.session.flush()
            self.session.add(SalesOrderItem(
                order_id=order.id,
                product_id=product.id,
                product_code=product.product_code,
                quantity=units_each,
                unit_price=product.final_price,
                line_total=line_total
            ))

        self.session.commit()
