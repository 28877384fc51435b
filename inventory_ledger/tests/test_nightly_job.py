"""
Tests for the nightly job and the command line interface.
"""
import io
import unittest
from datetime import date, timedelta
from unittest.mock import patch

from inventory_ledger.batch.nightly_job import run_nightly_job
from inventory_ledger.main import main, parse_allocations
from inventory_ledger.exceptions import ValidationError
from inventory_ledger.services.reorder_service import ReorderService
from inventory_ledger.tests.base import LedgerTestCase


class TestNightlyJob(LedgerTestCase):

    def test_run_nightly_job(self):
        self.add_product('LA-SO-001')
        self.add_product('BA-SH-002', name='Bath Salts', price='10.00')
        self.receive('LA-SO-001', expiry_date=date.today() + timedelta(days=7), SHELF=10)
        self.receive('BA-SH-002', WAREHOUSE=400)
        self.release()

        results = run_nightly_job()

        self.assertTrue(results['success'])
        self.assertIsNotNone(results['duration'])
        processes = results['processes']
        self.assertEqual(set(processes), {'reorder_evaluation', 'expiring_batches'})
        self.assertEqual(processes['reorder_evaluation']['evaluated'], 2)
        self.assertEqual(processes['reorder_evaluation']['alerts_raised'], 1)
        self.assertEqual(processes['reorder_evaluation']['critical'], 1)
        self.assertEqual(processes['expiring_batches']['batches'], 1)
        self.assertEqual(processes['expiring_batches']['expiring_units'], 10)

        alerts = ReorderService(self.session).get_reorder_alerts()
        self.assertEqual([a['product_code'] for a in alerts], ['LA-SO-001'])

    def test_failed_step_is_reported(self):
        with patch('inventory_ledger.batch.nightly_job.run_reorder_evaluation',
                   side_effect=RuntimeError('database is locked')), \
                patch('inventory_ledger.batch.nightly_job.log_exception') as log_exception:
            results = run_nightly_job()

        self.assertFalse(results['success'])
        self.assertEqual(results['error'], 'database is locked')
        self.assertEqual(log_exception.call_args[0][0], 'nightly_job')


class TestCommandLine(LedgerTestCase):

    def setUp(self):
        super().setUp()
        patcher = patch('inventory_ledger.main.init_application', return_value=True)
        patcher.start()
        self.addCleanup(patcher.stop)

    def run_cli(self, *argv):
        with patch('sys.stdout', new_callable=io.StringIO) as out, \
                patch('sys.stderr', new_callable=io.StringIO):
            code = main(list(argv))
        return code, out.getvalue()

    def test_parse_allocations(self):
        self.assertEqual(parse_allocations(['WAREHOUSE=80', 'shelf=20']), {'WAREHOUSE': 80, 'shelf': 20})
        with self.assertRaises(ValidationError):
            parse_allocations(['WAREHOUSE'])
        with self.assertRaises(ValidationError):
            parse_allocations(['WAREHOUSE=-3'])

    def test_stock_workflow(self):
        self.assertEqual(self.run_cli('add-product', 'LA-SO-001', '--name', 'Lavender Soap',
                                      '--price', '4.50', '--capacity', '200')[0], 0)
        self.assertEqual(self.run_cli('receive', 'LA-SO-001', 'WAREHOUSE=80', 'SHELF=20',
                                      '--unit-cost', '1.10')[0], 0)
        self.assertEqual(self.run_cli('transfer', 'LA-SO-001', 'WAREHOUSE', 'ONLINE', '15')[0], 0)
        self.assertEqual(self.run_cli('adjust', 'LA-SO-001', 'SHELF', '-2', '--reason', 'damaged')[0], 0)

        code, output = self.run_cli('stock', 'LA-SO-001')

        self.assertEqual(code, 0)
        self.assertIn('TOTAL', output)
        self.assertEqual(self.quantity('LA-SO-001', 'WAREHOUSE'), 65)
        self.assertEqual(self.quantity('LA-SO-001', 'SHELF'), 18)
        self.assertEqual(self.quantity('LA-SO-001', 'ONLINE'), 15)

    def test_evaluate_and_alerts(self):
        self.run_cli('add-product', 'LA-SO-001', '--name', 'Lavender Soap', '--price', '4.50')
        self.run_cli('receive', 'LA-SO-001', 'WAREHOUSE=20', '--unit-cost', '1.00')

        code, output = self.run_cli('evaluate', 'LA-SO-001')
        self.assertEqual(code, 0)
        self.assertIn('CRITICAL', output)

        code, output = self.run_cli('alerts')
        self.assertEqual(code, 0)
        self.assertIn('PRODUCT_CRITICAL', output)

    def test_discount_and_storefront(self):
        self.run_cli('add-product', 'BA-SH-002', '--name', 'Bath Salts', '--price', '10.00',
                     '--category', 'Bath')
        self.run_cli('receive', 'BA-SH-002', 'ONLINE=4', '--unit-cost', '2.00')

        code, output = self.run_cli('discount', 'BA-SH-002', '--percentage', '20')
        self.assertEqual(code, 0)
        self.assertIn('8.00', output)

        code, output = self.run_cli('storefront')
        self.assertEqual(code, 0)
        self.assertIn('Categories: Bath', output)
        self.assertIn('20.0% off', output)

        code, output = self.run_cli('discount', 'BA-SH-002', '--remove')
        self.assertIn('no discount', output)

        code, output = self.run_cli('storefront', '--search', 'candle')
        self.assertIn('No products available online', output)

    def test_errors_return_non_zero(self):
        self.assertEqual(self.run_cli('transfer', 'ZZ-ZZ-999', 'WAREHOUSE', 'SHELF', '1')[0], 1)
        self.assertEqual(self.run_cli('receive', 'LA-SO-001', 'WAREHOUSE=x', '--unit-cost', '1')[0], 1)
        self.assertEqual(self.run_cli('alerts', '--status', 'PENDING')[0], 1)


if __name__ == '__main__':
    unittest.main()
