# inventory_ledger/services/sales_history_service.py
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from inventory_ledger.config import config
from inventory_ledger.models import SalesOrder, SalesOrderItem
from inventory_ledger.utils.date_utils import window_start
from inventory_ledger.utils.validation import normalize_product_code

class SalesHistoryService:
    """Read-only view of completed sales used for velocity."""

    def __init__(self, session: Session, window_days: Optional[int] = None):
        """Initialize the sales history service.

        Args:
            session: Database session
            window_days: Trailing window in days; defaults to BUSINESS_RULES.sales_window_days
        """
        self.session = session
        self.window_days = window_days or config.business_rules['sales_window_days']

    def _window_query(self, *columns, now: Optional[datetime] = None):
        return self.session.query(*columns).select_from(SalesOrderItem).join(
            SalesOrder, SalesOrderItem.order_id == SalesOrder.id
        ).filter(
            SalesOrder.order_date >= window_start(self.window_days, now)
        )

    def get_velocity(self, product_code: str, now: Optional[datetime] = None) -> Dict[str, int]:
        """Transaction count and units sold for a product in the window.

        Returns:
            Dictionary with transaction_count and units_sold
        """
        count, units = self._window_query(
            func.count(SalesOrderItem.id),
            func.coalesce(func.sum(SalesOrderItem.quantity), 0),
            now=now
        ).filter(
            SalesOrderItem.product_code == normalize_product_code(product_code)
        ).one()

        return {'transaction_count': int(count or 0), 'units_sold': int(units or 0)}

    def get_velocities(
        self,
        product_codes: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Dict[str, int]]:
        """Velocity for many products in one query; products without sales are omitted."""
        query = self._window_query(
            SalesOrderItem.product_code,
            func.count(SalesOrderItem.id),
            func.coalesce(func.sum(SalesOrderItem.quantity), 0),
            now=now
        )

        if product_codes is not None:
            codes = [normalize_product_code(code) for code in product_codes]
            query = query.filter(SalesOrderItem.product_code.in_(codes))

        rows = query.group_by(SalesOrderItem.product_code).all()

        return {
            code: {'transaction_count': int(count), 'units_sold': int(units)}
            for code, count, units in rows
        }

    def get_sales_lines(self, now: Optional[datetime] = None) -> List[Dict]:
        """Individual sale lines in the window, for reporting."""
        rows = self._window_query(
            SalesOrder.order_code,
            SalesOrder.order_date,
            SalesOrder.sales_channel,
            SalesOrderItem.product_code,
            SalesOrderItem.quantity,
            SalesOrderItem.line_total,
            now=now
        ).order_by(SalesOrder.order_date).all()

        return [
            {
                'order_code': order_code,
                'order_date': order_date,
                'sales_channel': channel,
                'product_code': product_code,
                'quantity': quantity,
                'line_total': line_total
            }
            for order_code, order_date, channel, product_code, quantity, line_total in rows
        ]
