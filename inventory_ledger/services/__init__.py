from .location_service import LocationService
from .catalog_service import CatalogService
from .batch_service import BatchService
from .inventory_service import InventoryService
from .sales_history_service import SalesHistoryService
from .reorder_service import ReorderService
from .movement_service import MovementService, record_movement
from .cart_service import ShoppingCartService
from .checkout_service import CheckoutService
from .reporting_service import ReportingService

__all__ = [
    'LocationService',
    'CatalogService',
    'BatchService',
    'InventoryService',
    'SalesHistoryService',
    'ReorderService',
    'MovementService',
    'record_movement',
    'ShoppingCartService',
    'CheckoutService',
    'ReportingService'
]
