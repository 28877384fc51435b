# inventory_ledger/services/reporting_service.py
from datetime import date, datetime, timedelta
from typing import Dict, Optional

import pandas as pd
from sqlalchemy import func
from sqlalchemy.orm import Session

from inventory_ledger.config import config
from inventory_ledger.models import (
    Batch, Product, InventoryLocation, LocationInventory, InventoryMovement
)
from inventory_ledger.core.reorder import classify_velocity
from inventory_ledger.services.location_service import LocationService
from inventory_ledger.services.sales_history_service import SalesHistoryService
from inventory_ledger.utils.date_utils import days_until
from inventory_ledger.utils.validation import normalize_product_code, normalize_location_code
from inventory_ledger.logging_setup import get_logger

logger = get_logger('reporting')

class ReportingService:
    """Service for generating stock, expiry, sales and movement reports."""

    def __init__(self, session: Session):
        """Initialize the reporting service.

        Args:
            session: Database session
        """
        self.session = session

    def inventory_status_report(
        self,
        location_code: Optional[str] = None,
        include_zeros: bool = True
    ) -> Dict:
        """Generate inventory status report.

        Args:
            location_code: Optional location filter
            include_zeros: Whether to include products with no stock

        Returns:
            Dictionary with report data
        """
        query = self.session.query(
            Product.product_code,
            InventoryLocation.location_code,
            func.coalesce(func.sum(LocationInventory.current_quantity), 0).label('quantity')
        ).select_from(LocationInventory).join(
            Batch, LocationInventory.batch_id == Batch.id
        ).join(
            Product, Batch.product_id == Product.id
        ).join(
            InventoryLocation, LocationInventory.location_id == InventoryLocation.id
        )

        if location_code:
            query = query.filter(
                InventoryLocation.location_code == normalize_location_code(location_code)
            )

        stock = {}
        for product_code, loc, quantity in query.group_by(
            Product.product_code, InventoryLocation.location_code
        ).all():
            stock.setdefault(product_code, {})[loc] = int(quantity or 0)

        location_codes = list(LocationService(self.session).location_types())
        if location_code:
            location_codes = [normalize_location_code(location_code)]

        default_capacity = config.business_rules['default_capacity']
        products = self.session.query(Product).filter(
            Product.is_active == True
        ).order_by(Product.product_code).all()

        report_data = []
        summary = {
            'total_products': 0,
            'total_units': 0,
            'out_of_stock_products': 0
        }

        for product in products:
            by_location = {code: stock.get(product.product_code, {}).get(code, 0) for code in location_codes}
            total = sum(by_location.values())

            if total == 0:
                if not include_zeros:
                    continue
                summary['out_of_stock_products'] += 1

            capacity = product.stock_capacity or default_capacity
            report_data.append({
                'product_code': product.product_code,
                'product_name': product.product_name,
                'category': product.category,
                'final_price': product.final_price,
                'locations': by_location,
                'total_quantity': total,
                'capacity': capacity,
                'stock_pct_of_capacity': round(100.0 * total / capacity, 1) if capacity else 0.0
            })

            summary['total_products'] += 1
            summary['total_units'] += total

        logger.info(
            f"Generated inventory status report: {summary['total_products']} products, "
            f"{summary['total_units']} units"
        )

        return {
            'report_name': "Inventory Status Report",
            'report_date': datetime.now().isoformat(),
            'filters': {
                'location_code': location_code,
                'include_zeros': include_zeros
            },
            'summary': summary,
            'data': report_data
        }

    def expiring_batches_report(self, days: int = 30, today: Optional[date] = None) -> Dict:
        """Batches with stock on hand that expire within the given days.

        Already-expired batches are included with a negative days_to_expiry.
        """
        today = today or date.today()
        cutoff = today + timedelta(days=days)

        rows = self.session.query(
            Batch.batch_code,
            Batch.expiry_date,
            Product.product_code,
            Product.product_name,
            InventoryLocation.location_code,
            LocationInventory.current_quantity
        ).select_from(LocationInventory).join(
            Batch, LocationInventory.batch_id == Batch.id
        ).join(
            Product, Batch.product_id == Product.id
        ).join(
            InventoryLocation, LocationInventory.location_id == InventoryLocation.id
        ).filter(
            Batch.expiry_date.isnot(None),
            Batch.expiry_date <= cutoff,
            LocationInventory.current_quantity > 0
        ).order_by(Batch.expiry_date, Batch.batch_code, InventoryLocation.id).all()

        report_data = [
            {
                'batch_code': batch_code,
                'product_code': product_code,
                'product_name': product_name,
                'location_code': location_code,
                'expiry_date': expiry_date,
                'days_to_expiry': days_until(expiry_date, today),
                'quantity': quantity
            }
            for batch_code, expiry_date, product_code, product_name, location_code, quantity in rows
        ]

        return {
            'report_name': "Expiring Batches Report",
            'report_date': datetime.now().isoformat(),
            'filters': {'days': days},
            'summary': {
                'batches': len({row['batch_code'] for row in report_data}),
                'expired_units': sum(r['quantity'] for r in report_data if r['days_to_expiry'] < 0),
                'expiring_units': sum(r['quantity'] for r in report_data if r['days_to_expiry'] >= 0)
            },
            'data': report_data
        }

    def sales_velocity_report(self, window_days: Optional[int] = None) -> Dict:
        """Per-product sales velocity over the trailing window.

        Args:
            window_days: Window in days; defaults to BUSINESS_RULES.sales_window_days

        Returns:
            Dictionary with report data, fastest movers first
        """
        history = SalesHistoryService(self.session, window_days)
        lines = history.get_sales_lines()

        report = {
            'report_name': "Sales Velocity Report",
            'report_date': datetime.now().isoformat(),
            'filters': {'window_days': history.window_days},
            'summary': {'products': 0, 'transactions': 0, 'units_sold': 0, 'revenue': 0.0},
            'data': []
        }

        if not lines:
            return report

        df = pd.DataFrame(lines)
        df['line_total'] = df['line_total'].astype(float)

        grouped = df.groupby('product_code').agg(
            transaction_count=('quantity', 'size'),
            units_sold=('quantity', 'sum'),
            revenue=('line_total', 'sum'),
            last_sale=('order_date', 'max')
        ).reset_index()
        grouped['avg_units_per_sale'] = (grouped['units_sold'] / grouped['transaction_count']).round(1)
        grouped['daily_rate'] = (grouped['units_sold'] / history.window_days).round(2)
        grouped['velocity_tier'] = [
            classify_velocity(int(count), int(units)).value
            for count, units in zip(grouped['transaction_count'], grouped['units_sold'])
        ]
        grouped = grouped.sort_values(['units_sold', 'product_code'], ascending=[False, True])

        report['data'] = [
            {
                'product_code': row.product_code,
                'transaction_count': int(row.transaction_count),
                'units_sold': int(row.units_sold),
                'revenue': round(float(row.revenue), 2),
                'avg_units_per_sale': float(row.avg_units_per_sale),
                'daily_rate': float(row.daily_rate),
                'velocity_tier': row.velocity_tier,
                'last_sale': row.last_sale
            }
            for row in grouped.itertuples(index=False)
        ]
        report['summary'] = {
            'products': len(grouped),
            'transactions': int(grouped['transaction_count'].sum()),
            'units_sold': int(grouped['units_sold'].sum()),
            'revenue': round(float(grouped['revenue'].sum()), 2)
        }

        return report

    def movement_history(
        self,
        product_code: Optional[str] = None,
        from_date: Optional[datetime] = None,
        limit: int = 100
    ) -> Dict:
        """Audit trail of stock movements, most recent first."""
        query = self.session.query(InventoryMovement)

        if product_code:
            query = query.filter(InventoryMovement.product_code == normalize_product_code(product_code))

        if from_date is not None:
            query = query.filter(InventoryMovement.movement_date >= from_date)

        movements = query.order_by(
            InventoryMovement.movement_date.desc(), InventoryMovement.id.desc()
        ).limit(limit).all()

        report_data = [
            {
                'id': m.id,
                'product_code': m.product_code,
                'movement_type': m.movement_type.value,
                'quantity': m.quantity,
                'from_location': m.from_location,
                'to_location': m.to_location,
                'reason': m.reason,
                'reference': m.reference,
                'movement_date': m.movement_date
            }
            for m in movements
        ]

        return {
            'report_name': "Inventory Movement History",
            'report_date': datetime.now().isoformat(),
            'filters': {'product_code': product_code, 'limit': limit},
            'summary': {'movements': len(report_data)},
            'data': report_data
        }
