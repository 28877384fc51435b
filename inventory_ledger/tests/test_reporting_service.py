"""
Tests for stock, expiry, sales and movement reports.
"""
import unittest
from datetime import date, timedelta

from inventory_ledger.services.movement_service import MovementService
from inventory_ledger.services.reporting_service import ReportingService
from inventory_ledger.tests.base import LedgerTestCase


class TestReportingService(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.add_product('LA-SO-001')
        self.add_product('BA-SH-002', name='Bath Salts', price='10.00')
        self.reports = ReportingService(self.session)

    def test_inventory_status_report(self):
        self.receive('LA-SO-001', WAREHOUSE=30, SHELF=5)

        report = self.reports.inventory_status_report()

        self.assertEqual(report['report_name'], "Inventory Status Report")
        self.assertEqual(report['summary'], {
            'total_products': 2,
            'total_units': 35,
            'out_of_stock_products': 1
        })
        soap = report['data'][1]
        self.assertEqual(soap['product_code'], 'LA-SO-001')
        self.assertEqual(soap['locations'], {'WAREHOUSE': 30, 'SHELF': 5, 'ONLINE': 0})
        self.assertEqual(soap['stock_pct_of_capacity'], 35.0)

    def test_inventory_status_report_filtered(self):
        self.receive('LA-SO-001', WAREHOUSE=30, SHELF=5)

        report = self.reports.inventory_status_report(location_code='shelf', include_zeros=False)

        self.assertEqual(len(report['data']), 1)
        self.assertEqual(report['data'][0]['locations'], {'SHELF': 5})
        self.assertEqual(report['summary']['total_units'], 5)

    def test_expiring_batches_report(self):
        today = date.today()
        self.receive('LA-SO-001', expiry_date=today + timedelta(days=5), SHELF=4, ONLINE=2)
        self.receive('LA-SO-001', expiry_date=today + timedelta(days=20), WAREHOUSE=10)
        self.receive('LA-SO-001', expiry_date=today + timedelta(days=100), WAREHOUSE=10)
        self.receive('BA-SH-002', WAREHOUSE=10)

        report = self.reports.expiring_batches_report(days=30, today=today + timedelta(days=10))

        self.assertEqual(
            [(row['location_code'], row['days_to_expiry'], row['quantity']) for row in report['data']],
            [('SHELF', -5, 4), ('ONLINE', -5, 2), ('WAREHOUSE', 10, 10)]
        )
        self.assertEqual(report['summary'], {
            'batches': 2,
            'expired_units': 6,
            'expiring_units': 10
        })

    def test_sales_velocity_report(self):
        self.record_sales('LA-SO-001', count=12, units_each=5)
        self.record_sales('BA-SH-002', count=2, units_each=3)
        self.record_sales('BA-SH-002', count=4, units_each=1, days_ago=60)

        report = self.reports.sales_velocity_report()

        self.assertEqual(report['filters'], {'window_days': 30})
        self.assertEqual(report['summary'], {
            'products': 2,
            'transactions': 14,
            'units_sold': 66,
            'revenue': 330.0
        })

        soap, salts = report['data']
        self.assertEqual(soap['product_code'], 'LA-SO-001')
        self.assertEqual(soap['velocity_tier'], 'FAST')
        self.assertEqual(soap['avg_units_per_sale'], 5.0)
        self.assertEqual(soap['daily_rate'], 2.0)
        self.assertEqual(salts['velocity_tier'], 'SLOW')
        self.assertEqual(salts['revenue'], 60.0)

    def test_sales_velocity_report_without_sales(self):
        report = self.reports.sales_velocity_report(window_days=7)

        self.assertEqual(report['data'], [])
        self.assertEqual(report['summary']['products'], 0)
        self.assertEqual(report['filters'], {'window_days': 7})

    def test_movement_history(self):
        self.receive('LA-SO-001', WAREHOUSE=30)
        self.receive('BA-SH-002', WAREHOUSE=10)
        MovementService(self.session).transfer('LA-SO-001', 'WAREHOUSE', 'SHELF', 12, reason='restock')

        report = self.reports.movement_history(product_code='la-so-001')

        self.assertEqual(report['summary'], {'movements': 2})
        latest = report['data'][0]
        self.assertEqual(latest['movement_type'], 'TRANSFER')
        self.assertEqual((latest['from_location'], latest['to_location']), ('WAREHOUSE', 'SHELF'))
        self.assertEqual(report['data'][1]['movement_type'], 'STOCK_IN')

        self.assertEqual(len(self.reports.movement_history(limit=1)['data']), 1)


if __name__ == '__main__':
    unittest.main()
