# inventory_ledger/models.py
from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, Boolean, ForeignKey, Text,
    Enum, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
import enum

from inventory_ledger.core.pricing import calculate_final_price

Base = declarative_base()

class LocationType(enum.Enum):
    """Enum for inventory location types.

    Values:
        WAREHOUSE: Back-of-house storage
        PHYSICAL_SHELF: Retail display shelf
        ONLINE_INVENTORY: Stock reserved for the online store
    """
    WAREHOUSE = 'WAREHOUSE'
    PHYSICAL_SHELF = 'PHYSICAL_SHELF'
    ONLINE_INVENTORY = 'ONLINE_INVENTORY'

    def __str__(self):
        """Return the string value of the enum."""
        return self.value

# Fixed location codes and the type each one maps to
LOCATION_CODES = {
    'WAREHOUSE': (LocationType.WAREHOUSE, 'Main Warehouse Storage'),
    'SHELF': (LocationType.PHYSICAL_SHELF, 'Retail Display Shelf'),
    'ONLINE': (LocationType.ONLINE_INVENTORY, 'Online Store Inventory'),
}

class DiscountType(enum.Enum):
    PERCENTAGE = 'PERCENTAGE'
    AMOUNT = 'AMOUNT'

class MovementType(enum.Enum):
    STOCK_IN = 'STOCK_IN'
    STOCK_OUT = 'STOCK_OUT'
    TRANSFER = 'TRANSFER'
    ADJUSTMENT = 'ADJUSTMENT'

class AlertType(enum.Enum):
    """Severity of a reorder alert."""
    PRODUCT_CRITICAL = 'PRODUCT_CRITICAL'
    PRODUCT_CONSIDER = 'PRODUCT_CONSIDER'

class AlertStatus(enum.Enum):
    ACTIVE = 'ACTIVE'
    SUPERSEDED = 'SUPERSEDED'
    CLOSED = 'CLOSED'
    RESOLVED = 'RESOLVED'

class Product(Base):
    """Catalog entry for a sellable SKU."""
    __tablename__ = 'product'

    id = Column(Integer, primary_key=True)
    product_code = Column(String(20), nullable=False, unique=True)
    product_name = Column(String(100), nullable=False)
    category = Column(String(50))
    unit_of_measure = Column(String(20), default='each')
    base_price = Column(Numeric(10, 2), nullable=False, default=0)
    discount_type = Column(Enum(DiscountType))
    discount_value = Column(Numeric(10, 2), default=0)
    stock_capacity = Column(Integer)  # Capacity used by the reorder advisor
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=func.now())

    batches = relationship("Batch", back_populates="product")
    reorder_alerts = relationship("ReorderAlert", back_populates="product")

    @property
    def final_price(self):
        """Base price less discount, never negative."""
        return calculate_final_price(self.base_price, self.discount_type, self.discount_value)

class InventoryLocation(Base):
    __tablename__ = 'inventory_location'

    id = Column(Integer, primary_key=True)
    location_code = Column(String(20), nullable=False, unique=True)
    location_name = Column(String(100), nullable=False)
    location_type = Column(Enum(LocationType), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    inventory_records = relationship("LocationInventory", back_populates="location")

class Batch(Base):
    """One received lot of a product. Never updated once written."""
    __tablename__ = 'batch'

    id = Column(Integer, primary_key=True)
    batch_code = Column(String(60), nullable=False, unique=True)
    product_id = Column(Integer, ForeignKey('product.id'), nullable=False)
    quantity_received = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(10, 2), default=0)
    expiry_date = Column(Date)
    received_date = Column(DateTime, default=func.now(), nullable=False)

    product = relationship("Product", back_populates="batches")
    inventory_records = relationship("LocationInventory", back_populates="batch")

    __table_args__ = (
        CheckConstraint('quantity_received >= 0', name='ck_batch_quantity_received'),
        Index('idx_batch_product', 'product_id'),
    )

class LocationInventory(Base):
    """Current quantity of one batch at one location."""
    __tablename__ = 'location_inventory'

    id = Column(Integer, primary_key=True)
    batch_id = Column(Integer, ForeignKey('batch.id'), nullable=False)
    location_id = Column(Integer, ForeignKey('inventory_location.id'), nullable=False)
    current_quantity = Column(Integer, nullable=False, default=0)
    location_capacity = Column(Integer, nullable=False)
    min_threshold = Column(Integer, default=0)
    last_updated = Column(DateTime, default=func.now(), onupdate=func.now())

    batch = relationship("Batch", back_populates="inventory_records")
    location = relationship("InventoryLocation", back_populates="inventory_records")

    __table_args__ = (
        UniqueConstraint('batch_id', 'location_id', name='uq_location_inventory_batch_location'),
        CheckConstraint('current_quantity >= 0', name='ck_location_inventory_non_negative'),
        CheckConstraint('current_quantity <= location_capacity', name='ck_location_inventory_capacity'),
        Index('idx_location_inventory_location', 'location_id'),
    )

class InventoryMovement(Base):
    """Audit trail of stock movements."""
    __tablename__ = 'inventory_movement'

    id = Column(Integer, primary_key=True)
    product_code = Column(String(20), nullable=False)
    movement_type = Column(Enum(MovementType), nullable=False)
    quantity = Column(Integer, nullable=False)
    from_location = Column(String(20))
    to_location = Column(String(20))
    reason = Column(String(255))
    reference = Column(String(60))  # Order code or batch code
    movement_date = Column(DateTime, default=func.now())

    __table_args__ = (
        Index('idx_inventory_movement_product', 'product_code', 'movement_date'),
    )

class ReorderAlert(Base):
    __tablename__ = 'reorder_alert'

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey('product.id'), nullable=False)
    product_code = Column(String(20), nullable=False)
    current_quantity = Column(Integer, nullable=False)
    threshold_quantity = Column(Integer, nullable=False)
    capacity = Column(Integer)
    velocity_tier = Column(String(10))
    transaction_count = Column(Integer, default=0)
    units_sold = Column(Integer, default=0)
    alert_type = Column(Enum(AlertType), nullable=False)
    suggested_order_quantity = Column(Integer, default=0)
    status = Column(Enum(AlertStatus), default=AlertStatus.ACTIVE, nullable=False)
    created_at = Column(DateTime, default=func.now())

    # Resolution status
    resolved_at = Column(DateTime)
    resolution_notes = Column(Text)

    product = relationship("Product", back_populates="reorder_alerts")

    __table_args__ = (
        Index('idx_reorder_alert_product_status', 'product_id', 'status'),
    )

class SalesOrder(Base):
    """A completed sale. Immutable once created."""
    __tablename__ = 'sales_order'

    id = Column(Integer, primary_key=True)
    order_code = Column(String(40), nullable=False, unique=True)
    sales_channel = Column(String(20), default='ONLINE', nullable=False)
    customer_name = Column(String(100))
    customer_email = Column(String(120))
    customer_phone = Column(String(30))
    delivery_address = Column(String(255))
    subtotal = Column(Numeric(12, 2), default=0)
    total_discount = Column(Numeric(12, 2), default=0)
    final_total = Column(Numeric(12, 2), default=0)
    order_date = Column(DateTime, default=func.now(), nullable=False)

    items = relationship("SalesOrderItem", back_populates="order")

class SalesOrderItem(Base):
    __tablename__ = 'sales_order_item'

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey('sales_order.id'), nullable=False)
    product_id = Column(Integer, ForeignKey('product.id'), nullable=False)
    product_code = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)

    order = relationship("SalesOrder", back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_sales_order_item_quantity'),
        Index('idx_sales_order_item_product', 'product_code'),
    )
