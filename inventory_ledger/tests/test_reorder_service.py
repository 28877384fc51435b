"""
Tests for reorder evaluation and the alert lifecycle.
"""
import unittest

from inventory_ledger.core.reorder import VelocityTier, Severity
from inventory_ledger.exceptions import NotFoundError, ValidationError
from inventory_ledger.models import ReorderAlert, AlertStatus, AlertType
from inventory_ledger.services.reorder_service import ReorderService
from inventory_ledger.tests.base import LedgerTestCase


class TestReorderService(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.add_product('LA-SO-001', stock_capacity=200)
        self.add_product('BA-SH-002', name='Bath Salts', price='10.00')
        self.reorder = ReorderService(self.session)

    def test_fast_mover_below_threshold_gets_consider_alert(self):
        """capacity 200, 12 sales of 5 units, stock 55: threshold 80, order 75."""
        self.receive('LA-SO-001', WAREHOUSE=40, SHELF=15)
        self.record_sales('LA-SO-001', count=12, units_each=5)

        result = self.reorder.evaluate_product('LA-SO-001')

        self.assertTrue(result['needs_reorder'])
        self.assertEqual(result['velocity_tier'], VelocityTier.FAST)
        self.assertEqual(result['current_stock'], 55)
        self.assertEqual(result['threshold'], 80)
        self.assertEqual(result['severity'], Severity.CONSIDER)
        self.assertEqual(result['suggested_order_quantity'], 75)

        alert = self.session.get(ReorderAlert, result['alert_id'])
        self.assertEqual(alert.alert_type, AlertType.PRODUCT_CONSIDER)
        self.assertEqual(alert.status, AlertStatus.ACTIVE)
        self.assertEqual(alert.units_sold, 60)

    def test_assess_product_writes_nothing(self):
        self.receive('LA-SO-001', WAREHOUSE=10)

        assessment = self.reorder.assess_product('la-so-001')

        self.assertTrue(assessment['needs_reorder'])
        self.assertEqual(assessment['velocity'], 'No recent sales')
        self.assertEqual(self.session.query(ReorderAlert).count(), 0)

    def test_sales_outside_window_ignored(self):
        self.receive('LA-SO-001', WAREHOUSE=55)
        self.record_sales('LA-SO-001', count=12, units_each=5, days_ago=45)

        result = self.reorder.assess_product('LA-SO-001')

        self.assertEqual(result['transaction_count'], 0)
        self.assertEqual(result['velocity_tier'], VelocityTier.NEW)
        self.assertEqual(result['threshold'], 50)
        self.assertFalse(result['needs_reorder'])

    def test_reevaluation_supersedes_active_alert(self):
        self.receive('LA-SO-001', WAREHOUSE=30)

        first = self.reorder.evaluate_product('LA-SO-001')['alert_id']
        second = self.reorder.evaluate_product('LA-SO-001')['alert_id']

        self.assertNotEqual(first, second)
        self.assertEqual(self.session.get(ReorderAlert, first).status, AlertStatus.SUPERSEDED)
        active = self.reorder.get_reorder_alerts()
        self.assertEqual([a['id'] for a in active], [second])

    def test_restock_closes_alert(self):
        self.receive('LA-SO-001', WAREHOUSE=30)
        alert_id = self.reorder.evaluate_product('LA-SO-001')['alert_id']

        self.receive('LA-SO-001', WAREHOUSE=100)
        result = self.reorder.evaluate_product('LA-SO-001')

        self.assertFalse(result['needs_reorder'])
        self.assertIsNone(result['alert_id'])
        self.assertEqual(result['closed_alerts'], 1)
        self.assertEqual(self.session.get(ReorderAlert, alert_id).status, AlertStatus.CLOSED)
        self.assertEqual(self.reorder.get_reorder_alerts(), [])

    def test_evaluate_all_lists_critical_first(self):
        self.receive('LA-SO-001', WAREHOUSE=50)
        self.receive('BA-SH-002', SHELF=10)
        self.add_product('CA-ND-003', name='Beeswax Candle', price='12.00')
        self.receive('CA-ND-003', WAREHOUSE=500)

        results = self.reorder.evaluate_all()

        self.assertEqual(results, {
            'evaluated': 3,
            'alerts_raised': 2,
            'critical': 1,
            'closed': 0,
            'errors': 0
        })

        alerts = self.reorder.get_reorder_alerts()
        self.assertEqual([a['product_code'] for a in alerts], ['BA-SH-002', 'LA-SO-001'])
        self.assertEqual(alerts[0]['alert_type'], 'PRODUCT_CRITICAL')
        self.assertEqual(alerts[1]['alert_type'], 'PRODUCT_CONSIDER')

    def test_product_without_stock_is_critical(self):
        result = self.reorder.evaluate_product('BA-SH-002')

        self.assertEqual(result['current_stock'], 0)
        self.assertEqual(result['severity'], Severity.CRITICAL)
        self.assertEqual(result['suggested_order_quantity'], 70)

    def test_resolve_alert(self):
        self.receive('BA-SH-002', SHELF=10)
        alert_id = self.reorder.evaluate_product('BA-SH-002')['alert_id']

        resolved = self.reorder.resolve_alert(alert_id, notes='Ordered 100 from supplier')

        self.assertEqual(resolved['status'], 'RESOLVED')
        self.assertEqual(resolved['resolution_notes'], 'Ordered 100 from supplier')
        self.assertEqual(self.reorder.get_reorder_alerts(), [])
        self.assertEqual(len(self.reorder.get_reorder_alerts(status='resolved')), 1)

        with self.assertRaises(ValidationError):
            self.reorder.resolve_alert(alert_id)
        with self.assertRaises(NotFoundError):
            self.reorder.resolve_alert(9999)

    def test_invalid_status_filter(self):
        with self.assertRaises(ValidationError):
            self.reorder.get_reorder_alerts(status='PENDING')

    def test_unknown_product(self):
        with self.assertRaises(NotFoundError):
            self.reorder.evaluate_product('ZZ-ZZ-999')


if __name__ == '__main__':
    unittest.main()
