# inventory_ledger/services/reorder_service.py
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_ledger.config import config
from inventory_ledger.models import (
    Product, ReorderAlert, AlertType, AlertStatus
)
from inventory_ledger.core.reorder import assess_reorder, Severity, velocity_description
from inventory_ledger.exceptions import (
    LedgerError, NotFoundError, ValidationError, DatabaseError
)
from inventory_ledger.services.catalog_service import CatalogService
from inventory_ledger.services.inventory_service import InventoryService
from inventory_ledger.services.sales_history_service import SalesHistoryService
from inventory_ledger.logging_setup import get_logger

logger = get_logger('reorder')

SEVERITY_ALERT_TYPES = {
    Severity.CRITICAL: AlertType.PRODUCT_CRITICAL,
    Severity.CONSIDER: AlertType.PRODUCT_CONSIDER,
}

class ReorderService:
    """Service for evaluating reorder needs and managing reorder alerts."""

    def __init__(self, session: Session, sales_history: Optional[SalesHistoryService] = None):
        """Initialize the reorder service.

        Args:
            session: Database session
            sales_history: Optional sales history source
        """
        self.session = session
        self.catalog = CatalogService(session)
        self.inventory = InventoryService(session)
        self.sales_history = sales_history or SalesHistoryService(session)

        rules = config.business_rules
        self.safety_floor = rules['safety_floor']
        self.critical_level = rules['critical_level']
        self.default_capacity = rules['default_capacity']
        self.order_multiple = rules['order_multiple']

    def capacity_for(self, product: Product) -> int:
        """Configured capacity of a product, or the default capacity."""
        if product.stock_capacity:
            return product.stock_capacity
        return self.default_capacity

    def _assess(self, product: Product, velocity: Optional[Dict[str, int]] = None) -> Dict:
        if velocity is None:
            velocity = self.sales_history.get_velocity(product.product_code)
        assessment = assess_reorder(
            current_stock=self.inventory.get_total_quantity(product.product_code),
            capacity=self.capacity_for(product),
            transaction_count=velocity['transaction_count'],
            units_sold=velocity['units_sold'],
            safety_floor=self.safety_floor,
            critical_level=self.critical_level,
            order_multiple=self.order_multiple
        )
        assessment['product_code'] = product.product_code
        assessment['product_name'] = product.product_name
        assessment['velocity'] = velocity_description(
            velocity['transaction_count'], velocity['units_sold']
        )
        return assessment

    def assess_product(self, product_code: str) -> Dict:
        """Assess a product without writing anything.

        Args:
            product_code: Product code

        Returns:
            Dictionary with stock, tier, threshold and severity
        """
        return self._assess(self.catalog.require_product(product_code))

    def evaluate_product(self, product_code: str) -> Dict:
        """Run one evaluation cycle for a product and commit.

        Previous ACTIVE alerts are superseded by a new alert, or closed when the
        product is no longer low.

        Returns:
            The assessment, with the new alert ID under 'alert_id' (None when no alert)
        """
        product = self.catalog.require_product(product_code)

        try:
            result = self._evaluate(product)
            self.session.commit()
        except LedgerError:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Error evaluating {product.product_code}: {str(e)}")
            raise DatabaseError(f"Failed to evaluate {product.product_code}: {str(e)}")

        return result

    def _evaluate(self, product: Product, velocity: Optional[Dict[str, int]] = None) -> Dict:
        assessment = self._assess(product, velocity)
        now = datetime.now()

        previous = self.session.query(ReorderAlert).filter(
            ReorderAlert.product_id == product.id,
            ReorderAlert.status == AlertStatus.ACTIVE
        ).all()

        replaced_status = AlertStatus.SUPERSEDED if assessment['needs_reorder'] else AlertStatus.CLOSED
        for alert in previous:
            alert.status = replaced_status
            alert.resolved_at = now

        assessment['alert_id'] = None
        assessment['closed_alerts'] = len(previous) if not assessment['needs_reorder'] else 0

        if assessment['needs_reorder']:
            alert = ReorderAlert(
                product_id=product.id,
                product_code=product.product_code,
                current_quantity=assessment['current_stock'],
                threshold_quantity=assessment['threshold'],
                capacity=assessment['capacity'],
                velocity_tier=assessment['velocity_tier'].value,
                transaction_count=assessment['transaction_count'],
                units_sold=assessment['units_sold'],
                alert_type=SEVERITY_ALERT_TYPES[assessment['severity']],
                suggested_order_quantity=assessment['suggested_order_quantity'],
                status=AlertStatus.ACTIVE,
                created_at=now
            )
            self.session.add(alert)
            self.session.flush()
            assessment['alert_id'] = alert.id

            logger.info(
                f"{assessment['severity'].value} reorder alert for {product.product_code}: "
                f"stock {assessment['current_stock']} <= threshold {assessment['threshold']} "
                f"({assessment['velocity_tier'].value}), suggest {assessment['suggested_order_quantity']}"
            )

        return assessment

    def evaluate_all(self) -> Dict:
        """Evaluate every active product.

        Returns:
            Dictionary with evaluation statistics
        """
        results = {
            'evaluated': 0,
            'alerts_raised': 0,
            'critical': 0,
            'closed': 0,
            'errors': 0
        }

        products = self.session.query(Product).filter(
            Product.is_active == True
        ).order_by(Product.product_code).all()

        velocities = self.sales_history.get_velocities([p.product_code for p in products])
        no_sales = {'transaction_count': 0, 'units_sold': 0}

        for product in products:
            try:
                assessment = self._evaluate(product, velocities.get(product.product_code, no_sales))
                self.session.commit()
            except Exception as e:
                self.session.rollback()
                logger.error(f"Error evaluating {product.product_code}: {str(e)}")
                results['errors'] += 1
                continue

            results['evaluated'] += 1
            results['closed'] += assessment['closed_alerts']
            if assessment['alert_id'] is not None:
                results['alerts_raised'] += 1
                if assessment['severity'] == Severity.CRITICAL:
                    results['critical'] += 1

        logger.info(
            f"Reorder evaluation complete: {results['evaluated']} products, "
            f"{results['alerts_raised']} alerts ({results['critical']} critical), "
            f"{results['errors']} errors"
        )
        return results

    def get_reorder_alerts(self, status: str = 'ACTIVE') -> List[Dict]:
        """Get reorder alerts, CRITICAL first, then lowest stock.

        Args:
            status: Alert status filter, or None for all

        Returns:
            List of alert dictionaries
        """
        query = self.session.query(ReorderAlert)

        if status is not None:
            try:
                status_enum = AlertStatus(str(status).upper())
            except ValueError:
                raise ValidationError(f"Invalid alert status: {status}")
            query = query.filter(ReorderAlert.status == status_enum)

        alerts = query.all()
        alerts.sort(key=lambda a: (
            0 if a.alert_type == AlertType.PRODUCT_CRITICAL else 1,
            a.current_quantity,
            a.product_code
        ))

        return [self._alert_to_dict(alert) for alert in alerts]

    def resolve_alert(self, alert_id: int, notes: Optional[str] = None) -> Dict:
        """Manually resolve an ACTIVE alert."""
        alert = self.session.get(ReorderAlert, alert_id)
        if alert is None:
            raise NotFoundError(f"Reorder alert {alert_id} not found", details={'alert_id': alert_id})

        if alert.status != AlertStatus.ACTIVE:
            raise ValidationError(
                f"Reorder alert {alert_id} is {alert.status.value}, not ACTIVE",
                details={'alert_id': alert_id, 'status': alert.status.value}
            )

        alert.status = AlertStatus.RESOLVED
        alert.resolved_at = datetime.now()
        alert.resolution_notes = notes
        resolved = self._alert_to_dict(alert)

        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to resolve alert {alert_id}: {str(e)}")

        logger.info(f"Resolved reorder alert {alert_id} for {resolved['product_code']}")
        return resolved

    def _alert_to_dict(self, alert: ReorderAlert) -> Dict:
        return {
            'id': alert.id,
            'product_code': alert.product_code,
            'alert_type': alert.alert_type.value,
            'status': alert.status.value,
            'current_quantity': alert.current_quantity,
            'threshold_quantity': alert.threshold_quantity,
            'capacity': alert.capacity,
            'velocity_tier': alert.velocity_tier,
            'transaction_count': alert.transaction_count,
            'units_sold': alert.units_sold,
            'suggested_order_quantity': alert.suggested_order_quantity,
            'created_at': alert.created_at,
            'resolved_at': alert.resolved_at,
            'resolution_notes': alert.resolution_notes
        }
