# inventory_ledger/services/movement_service.py
from datetime import date
from typing import Dict, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_ledger.models import (
    Batch, Product, InventoryMovement, LocationInventory, MovementType
)
from inventory_ledger.exceptions import (
    LedgerError, ValidationError, InsufficientStockError, TransactionFailedError
)
from inventory_ledger.services.batch_service import BatchService
from inventory_ledger.services.catalog_service import CatalogService
from inventory_ledger.services.inventory_service import InventoryService
from inventory_ledger.utils.validation import (
    normalize_location_code, require_positive_quantity
)
from inventory_ledger.logging_setup import get_logger, log_exception

logger = get_logger('movement')

def record_movement(
    session: Session,
    product_code: str,
    movement_type: MovementType,
    quantity: int,
    from_location: Optional[str] = None,
    to_location: Optional[str] = None,
    reason: Optional[str] = None,
    reference: Optional[str] = None
) -> None:
    """Write an audit row inside a savepoint.

    Audit failures are logged and never abort the surrounding operation.
    """
    try:
        with session.begin_nested():
            session.add(InventoryMovement(
                product_code=product_code,
                movement_type=movement_type,
                quantity=quantity,
                from_location=from_location,
                to_location=to_location,
                reason=reason,
                reference=reference
            ))
    except SQLAlchemyError as e:
        logger.warning(
            f"Could not record {movement_type.value} movement for {product_code}: {str(e)}"
        )

class MovementService:
    """Transfers, adjustments and receipts, each in a single transaction."""

    def __init__(self, session: Session):
        """Initialize the movement service.

        Args:
            session: Database session
        """
        self.session = session
        self.catalog = CatalogService(session)
        self.batches = BatchService(session)
        self.inventory = InventoryService(session)

    def transfer(
        self,
        product_code: str,
        from_location: str,
        to_location: str,
        quantity: int,
        reason: Optional[str] = None
    ) -> Dict:
        """Move units between two locations, keeping batch identity.

        Args:
            product_code: Product code
            from_location: Source location code
            to_location: Destination location code
            quantity: Units to move
            reason: Optional reason recorded in the audit trail

        Returns:
            Dictionary with the transfer result
        """
        require_positive_quantity(quantity)
        source = normalize_location_code(from_location)
        destination = normalize_location_code(to_location)

        if source == destination:
            raise ValidationError(
                "Source and destination locations must differ",
                details={'location_code': source}
            )

        product = self.catalog.require_product(product_code)
        code = product.product_code

        try:
            self.inventory.locations.get_location(source)
            self.inventory.locations.get_location(destination)

            available = self.inventory.get_quantity(code, source)
            if available < quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for {code} at {source}: "
                    f"requested {quantity}, available {available}",
                    product_code=code,
                    location_code=source,
                    requested=quantity,
                    available=available
                )

            allocations = self.inventory._reduce(code, source, quantity)
            for batch_id, moved in allocations:
                self.inventory._add(batch_id, destination, moved)

            record_movement(
                self.session, code, MovementType.TRANSFER, quantity,
                from_location=source, to_location=destination, reason=reason
            )
            self.session.commit()
        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"Transfer of {quantity} {code} from {source} to {destination} rejected: {e}")
            raise
        except Exception as e:
            self.session.rollback()
            log_exception('movement', e, f"Transfer of {quantity} {code} from {source} to {destination} rolled back")
            raise TransactionFailedError(
                f"Transfer of {code} failed: {str(e)}",
                details={'product_code': code, 'from_location': source, 'to_location': destination}
            ) from e

        logger.info(f"Transferred {quantity} {code} from {source} to {destination}")

        return {
            'success': True,
            'product_code': code,
            'from_location': source,
            'to_location': destination,
            'quantity': quantity,
            'allocations': [
                {'batch_id': batch_id, 'quantity': moved} for batch_id, moved in allocations
            ]
        }

    def adjust(
        self,
        product_code: str,
        location_code: str,
        delta: int,
        reason: Optional[str] = None
    ) -> Dict:
        """Correct the stock of a product at one location.

        Args:
            product_code: Product code
            location_code: Location code
            delta: Signed correction; never zero
            reason: Optional reason recorded in the audit trail

        Returns:
            Dictionary with the adjustment result and new quantity
        """
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("delta must be a whole number", details={'delta': delta})
        if delta == 0:
            raise ValidationError("Adjustment delta cannot be zero", details={'delta': delta})

        product = self.catalog.require_product(product_code)
        code = product.product_code
        location = self.inventory.locations.get_location(location_code)
        loc = location.location_code

        try:
            if delta < 0:
                current = self.inventory.get_quantity(code, loc)
                if current < -delta:
                    raise ValidationError(
                        f"Cannot reduce {code} at {loc} by {-delta}: only {current} on hand",
                        details={'product_code': code, 'location_code': loc,
                                 'requested': -delta, 'available': current}
                    )
                try:
                    self.inventory._reduce(code, loc, -delta)
                except InsufficientStockError as e:
                    raise ValidationError(e.message, details=e.details) from e
                record_movement(
                    self.session, code, MovementType.ADJUSTMENT, -delta,
                    from_location=loc, reason=reason
                )
            else:
                batch_id = self._batch_for_adjustment(product, location.id)
                self.inventory._add(batch_id, loc, delta)
                record_movement(
                    self.session, code, MovementType.ADJUSTMENT, delta,
                    to_location=loc, reason=reason
                )

            new_quantity = self.inventory.get_quantity(code, loc)
            self.session.commit()
        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"Adjustment of {code} at {loc} by {delta} rejected: {e}")
            raise
        except Exception as e:
            self.session.rollback()
            log_exception('movement', e, f"Adjustment of {code} at {loc} by {delta} rolled back")
            raise TransactionFailedError(
                f"Adjustment of {code} failed: {str(e)}",
                details={'product_code': code, 'location_code': loc}
            ) from e

        logger.info(f"Adjusted {code} at {loc} by {delta}; now {new_quantity}")

        return {
            'success': True,
            'product_code': code,
            'location_code': loc,
            'delta': delta,
            'new_quantity': new_quantity
        }

    def _batch_for_adjustment(self, product: Product, location_id: int) -> int:
        """Most recent batch at the location, else the most recent batch overall."""
        batch_id = self.session.query(Batch.id).join(
            LocationInventory, LocationInventory.batch_id == Batch.id
        ).filter(
            Batch.product_id == product.id,
            LocationInventory.location_id == location_id
        ).order_by(Batch.received_date.desc(), Batch.id.desc()).limit(1).scalar()

        if batch_id is None:
            batch_id = self.session.query(Batch.id).filter(
                Batch.product_id == product.id
            ).order_by(Batch.received_date.desc(), Batch.id.desc()).limit(1).scalar()

        if batch_id is None:
            raise ValidationError(
                f"No batch on record for {product.product_code}; receive stock first",
                details={'product_code': product.product_code}
            )

        return batch_id

    def receive_stock(
        self,
        product_code: str,
        unit_cost,
        allocations: Dict[str, int],
        expiry_date: Union[str, date, None] = None,
        reason: Optional[str] = None,
        batch_code: Optional[str] = None
    ) -> Dict:
        """Create a batch and place it across locations in one transaction.

        Args:
            product_code: Product code
            unit_cost: Cost per unit
            allocations: Mapping of location code to units placed there
            expiry_date: Optional expiry date
            reason: Optional reason recorded in the audit trail
            batch_code: Optional batch code

        Returns:
            Dictionary with the new batch and its placement
        """
        if not allocations:
            raise ValidationError("At least one location allocation is required")

        placements = {}
        for location_code, quantity in allocations.items():
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
                raise ValidationError(
                    f"Allocation for {location_code} must be a non-negative whole number",
                    details={'location_code': location_code, 'quantity': quantity}
                )
            if quantity:
                loc = normalize_location_code(location_code)
                placements[loc] = placements.get(loc, 0) + quantity

        total = sum(placements.values())
        if total <= 0:
            raise ValidationError("Received quantity must be greater than zero")

        try:
            batch = self.batches._create_batch(
                product_code, total, unit_cost, expiry_date, batch_code
            )
            code = batch.product.product_code

            for loc, quantity in placements.items():
                self.inventory._add(batch.id, loc, quantity)
                record_movement(
                    self.session, code, MovementType.STOCK_IN, quantity,
                    to_location=loc, reason=reason or 'Stock received',
                    reference=batch.batch_code
                )

            batch_id = batch.id
            received_code = batch.batch_code
            self.session.commit()
        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"Receipt of {total} {product_code} rejected: {e}")
            raise
        except IntegrityError:
            self.session.rollback()
            raise ValidationError(
                f"Batch code {batch_code} already exists",
                details={'batch_code': batch_code}
            )
        except Exception as e:
            self.session.rollback()
            log_exception('movement', e, f"Receipt of {total} {product_code} rolled back")
            raise TransactionFailedError(
                f"Receipt of {product_code} failed: {str(e)}",
                details={'product_code': product_code, 'batch_code': batch_code}
            ) from e

        logger.info(f"Received batch {received_code}: {total} units of {code} {placements}")

        return {
            'success': True,
            'batch_id': batch_id,
            'batch_code': received_code,
            'product_code': code,
            'quantity_received': total,
            'placements': placements
        }

