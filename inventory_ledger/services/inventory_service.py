# inventory_ledger/services/inventory_service.py
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_ledger.config import config
from inventory_ledger.models import (
    Batch, Product, InventoryLocation, LocationInventory, LocationType
)
from inventory_ledger.exceptions import (
    LedgerError, NotFoundError, CapacityExceededError, InsufficientStockError,
    DatabaseError
)
from inventory_ledger.services.location_service import LocationService
from inventory_ledger.utils.validation import (
    normalize_product_code, normalize_location_code, require_positive_quantity
)
from inventory_ledger.logging_setup import get_logger, log_exception

logger = get_logger('inventory')

class _AllocationConflict(Exception):
    """A conditional decrement lost a race with another caller."""

class InventoryService:
    """Per-location, per-batch stock quantities.

    All quantity changes go through conditional UPDATE statements whose
    affected-row count decides success, so concurrent callers can never
    drive a record below zero or above its capacity.
    """

    def __init__(self, session: Session):
        """Initialize the inventory service.

        Args:
            session: Database session
        """
        self.session = session
        self.locations = LocationService(session)
        self.max_retries = max(config.business_rules['max_decrement_retries'], 1)

    def _quantity_query(self, product_code: str):
        return self.session.query(
            func.coalesce(func.sum(LocationInventory.current_quantity), 0)
        ).select_from(LocationInventory).join(
            Batch, LocationInventory.batch_id == Batch.id
        ).join(
            Product, Batch.product_id == Product.id
        ).join(
            InventoryLocation, LocationInventory.location_id == InventoryLocation.id
        ).filter(
            Product.product_code == normalize_product_code(product_code)
        )

    def get_quantity(self, product_code: str, location_code: str) -> int:
        """Total units of a product at one location, across batches.

        Returns 0 when nothing is on record.
        """
        total = self._quantity_query(product_code).filter(
            InventoryLocation.location_code == normalize_location_code(location_code)
        ).scalar()
        return int(total or 0)

    def get_total_quantity(self, product_code: str) -> int:
        return int(self._quantity_query(product_code).scalar() or 0)

    def get_quantity_by_location(self, product_code: str) -> Dict[LocationType, int]:
        """Units of a product per location type; every type is present."""
        quantities = {location_type: 0 for location_type in LocationType}

        rows = self.session.query(
            InventoryLocation.location_type,
            func.coalesce(func.sum(LocationInventory.current_quantity), 0)
        ).select_from(LocationInventory).join(
            Batch, LocationInventory.batch_id == Batch.id
        ).join(
            Product, Batch.product_id == Product.id
        ).join(
            InventoryLocation, LocationInventory.location_id == InventoryLocation.id
        ).filter(
            Product.product_code == normalize_product_code(product_code)
        ).group_by(InventoryLocation.location_type).all()

        for location_type, quantity in rows:
            quantities[location_type] = int(quantity or 0)

        return quantities

    def get_records(self, product_code: str) -> List[Dict]:
        """Location records for a product, one per batch and location."""
        rows = self.session.query(
            LocationInventory, Batch.batch_code, Batch.expiry_date,
            InventoryLocation.location_code
        ).join(
            Batch, LocationInventory.batch_id == Batch.id
        ).join(
            Product, Batch.product_id == Product.id
        ).join(
            InventoryLocation, LocationInventory.location_id == InventoryLocation.id
        ).filter(
            Product.product_code == normalize_product_code(product_code)
        ).order_by(InventoryLocation.id, Batch.id).all()

        return [
            {
                'batch_id': record.batch_id,
                'batch_code': batch_code,
                'expiry_date': expiry_date,
                'location_code': location_code,
                'current_quantity': record.current_quantity,
                'location_capacity': record.location_capacity,
                'min_threshold': record.min_threshold
            }
            for record, batch_code, expiry_date, location_code in rows
        ]

    def add_quantity(self, batch_id: int, location_code: str, delta: int) -> int:
        """Add units of one batch at a location and commit.

        Args:
            batch_id: Batch ID
            location_code: Location code
            delta: Units to add, greater than zero

        Returns:
            ID of the location inventory record
        """
        try:
            record_id = self._add(batch_id, location_code, delta)
            self.session.commit()
        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"Add of {delta} to batch {batch_id} at {location_code} rejected: {e}")
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            log_exception('inventory', e, f"Error adding stock to batch {batch_id} at {location_code}")
            raise DatabaseError(f"Failed to add stock: {str(e)}")

        logger.info(f"Added {delta} units of batch {batch_id} at {location_code}")
        return record_id

    def reduce_quantity(self, product_code: str, location_code: str, amount: int) -> List[Dict]:
        """Remove units of a product from a location and commit.

        Args:
            product_code: Product code
            location_code: Location code
            amount: Units to remove, greater than zero

        Returns:
            List of {'batch_id', 'quantity'} allocations, earliest expiry first
        """
        try:
            allocations = self._reduce(product_code, location_code, amount)
            self.session.commit()
        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"Reduce of {amount} {product_code} at {location_code} rejected: {e}")
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            log_exception('inventory', e, f"Error reducing {product_code} at {location_code}")
            raise DatabaseError(f"Failed to reduce stock: {str(e)}")

        logger.info(f"Reduced {product_code} at {location_code} by {amount}")
        return [{'batch_id': batch_id, 'quantity': quantity} for batch_id, quantity in allocations]

    def _add(self, batch_id: int, location_code: str, delta: int) -> int:
        """Conditionally increment a (batch, location) record. Does not commit."""
        require_positive_quantity(delta, 'delta')

        batch = self.session.get(Batch, batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found", details={'batch_id': batch_id})

        location = self.locations.get_location(location_code)

        record_id = self._record_id(batch.id, location.id)
        if record_id is None:
            record_id = self._insert_record(batch, location, delta)
            if record_id is not None:
                return record_id
            record_id = self._record_id(batch.id, location.id)

        result = self.session.execute(
            update(LocationInventory)
            .where(
                LocationInventory.id == record_id,
                LocationInventory.current_quantity + delta <= LocationInventory.location_capacity
            )
            .values(
                current_quantity=LocationInventory.current_quantity + delta,
                last_updated=func.now()
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            current, capacity = self.session.query(
                LocationInventory.current_quantity, LocationInventory.location_capacity
            ).filter(LocationInventory.id == record_id).one()
            raise CapacityExceededError(
                f"Adding {delta} to batch {batch.batch_code} at {location.location_code} "
                f"would exceed capacity {capacity} (current {current})",
                details={
                    'batch_id': batch.id,
                    'location_code': location.location_code,
                    'requested': delta,
                    'current_quantity': current,
                    'capacity': capacity
                }
            )

        return record_id

    def _record_id(self, batch_id: int, location_id: int) -> Optional[int]:
        return self.session.query(LocationInventory.id).filter(
            LocationInventory.batch_id == batch_id,
            LocationInventory.location_id == location_id
        ).scalar()

    def _insert_record(self, batch: Batch, location: InventoryLocation, quantity: int) -> Optional[int]:
        """Create a location record holding the quantity.

        Returns None when another caller created the record first.
        """
        defaults = config.location_defaults
        capacity = defaults.get(location.location_code, defaults['WAREHOUSE'])

        if quantity > capacity:
            raise CapacityExceededError(
                f"Adding {quantity} to batch {batch.batch_code} at {location.location_code} "
                f"would exceed capacity {capacity}",
                details={
                    'batch_id': batch.id,
                    'location_code': location.location_code,
                    'requested': quantity,
                    'current_quantity': 0,
                    'capacity': capacity
                }
            )

        record = LocationInventory(
            batch_id=batch.id,
            location_id=location.id,
            current_quantity=quantity,
            location_capacity=capacity,
            min_threshold=defaults['min_threshold']
        )

        try:
            with self.session.begin_nested():
                self.session.add(record)
        except IntegrityError:
            logger.info(f"Record for batch {batch.id} at {location.location_code} created concurrently")
            return None

        return record.id

    def _allocation_candidates(self, product_code: str, location_id: int) -> List[Tuple[int, int, int]]:
        """(record id, batch id, quantity) rows in allocation order.

        Earliest expiry first, batches without expiry last, then oldest batch.
        """
        return self.session.query(
            LocationInventory.id, LocationInventory.batch_id, LocationInventory.current_quantity
        ).join(
            Batch, LocationInventory.batch_id == Batch.id
        ).join(
            Product, Batch.product_id == Product.id
        ).filter(
            Product.product_code == product_code,
            LocationInventory.location_id == location_id,
            LocationInventory.current_quantity > 0
        ).order_by(
            case((Batch.expiry_date.is_(None), 1), else_=0),
            Batch.expiry_date,
            Batch.received_date,
            Batch.id
        ).all()

    def _decrement(self, record_id: int, quantity: int) -> bool:
        result = self.session.execute(
            update(LocationInventory)
            .where(
                LocationInventory.id == record_id,
                LocationInventory.current_quantity >= quantity
            )
            .values(
                current_quantity=LocationInventory.current_quantity - quantity,
                last_updated=func.now()
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _reduce(self, product_code: str, location_code: str, amount: int) -> List[Tuple[int, int]]:
        """Allocate and decrement stock across batches. Does not commit.

        Args:
            product_code: Product code
            location_code: Location code
            amount: Units to remove

        Returns:
            List of (batch_id, quantity) allocations
        """
        require_positive_quantity(amount, 'amount')
        code = normalize_product_code(product_code)
        location = self.locations.get_location(location_code)

        available = 0
        for attempt in range(1, self.max_retries + 1):
            candidates = self._allocation_candidates(code, location.id)
            available = sum(quantity for _, _, quantity in candidates)

            if available < amount:
                raise InsufficientStockError(
                    f"Insufficient stock for {code} at {location.location_code}: "
                    f"requested {amount}, available {available}",
                    product_code=code,
                    location_code=location.location_code,
                    requested=amount,
                    available=available
                )

            plan = []
            remaining = amount
            for record_id, batch_id, quantity in candidates:
                if remaining == 0:
                    break
                take = min(quantity, remaining)
                plan.append((record_id, batch_id, take))
                remaining -= take

            try:
                with self.session.begin_nested():
                    for record_id, batch_id, take in plan:
                        if not self._decrement(record_id, take):
                            raise _AllocationConflict(record_id)
            except _AllocationConflict as conflict:
                logger.warning(
                    f"Concurrent update on record {conflict.args[0]} while reducing {code} "
                    f"at {location.location_code} (attempt {attempt}/{self.max_retries})"
                )
                continue

            return [(batch_id, take) for _, batch_id, take in plan]

        raise InsufficientStockError(
            f"Could not reserve {amount} {code} at {location.location_code} "
            f"after {self.max_retries} attempts",
            product_code=code,
            location_code=location.location_code,
            requested=amount,
            available=available
        )
