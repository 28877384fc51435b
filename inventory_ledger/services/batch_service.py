# inventory_ledger/services/batch_service.py
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union
import uuid

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_ledger.models import Batch, Product
from inventory_ledger.core.pricing import to_money
from inventory_ledger.exceptions import LedgerError, ValidationError, DatabaseError
from inventory_ledger.services.catalog_service import CatalogService
from inventory_ledger.utils.date_utils import convert_to_date, timestamp_code
from inventory_ledger.utils.validation import normalize_product_code, require_positive_quantity
from inventory_ledger.logging_setup import get_logger

logger = get_logger('ledger')

class BatchService:
    """Append-only ledger of received lots."""

    def __init__(self, session: Session):
        """Initialize the batch service.

        Args:
            session: Database session
        """
        self.session = session
        self.catalog = CatalogService(session)

    def generate_batch_code(self, product_code: str, now: Optional[datetime] = None) -> str:
        """Default batch code: B-<product>-<yyyymmddHHMM>-<suffix>."""
        suffix = uuid.uuid4().hex[:6].upper()
        return f"B-{normalize_product_code(product_code)}-{timestamp_code(now)}-{suffix}"

    def create_batch(
        self,
        product_code: str,
        quantity_received: int,
        unit_cost,
        expiry_date: Union[str, date, None] = None,
        batch_code: Optional[str] = None
    ) -> int:
        """Record a newly received batch.

        Args:
            product_code: Product code
            quantity_received: Units received
            unit_cost: Cost per unit
            expiry_date: Optional expiry date
            batch_code: Optional batch code; generated when omitted

        Returns:
            ID of the created batch
        """
        try:
            batch = self._create_batch(
                product_code, quantity_received, unit_cost, expiry_date, batch_code
            )
            batch_id = batch.id
            created_code = batch.batch_code
            self.session.commit()
        except LedgerError:
            self.session.rollback()
            raise
        except IntegrityError:
            self.session.rollback()
            raise ValidationError(
                f"Batch code {batch_code} already exists",
                details={'batch_code': batch_code}
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Error creating batch for {product_code}: {str(e)}")
            raise DatabaseError(f"Failed to create batch: {str(e)}")

        logger.info(f"Created batch {created_code}: {quantity_received} units")
        return batch_id

    def _create_batch(
        self,
        product_code: str,
        quantity_received: int,
        unit_cost,
        expiry_date: Union[str, date, None] = None,
        batch_code: Optional[str] = None,
        received_date: Optional[datetime] = None
    ) -> Batch:
        """Validate and add a batch to the session without committing."""
        product = self.catalog.require_product(product_code)
        require_positive_quantity(quantity_received, 'quantity_received')

        cost = to_money(unit_cost)
        if cost < 0:
            raise ValidationError("Unit cost cannot be negative", details={'unit_cost': str(cost)})

        received_date = received_date or datetime.now()
        expiry = convert_to_date(expiry_date)
        if expiry is not None and expiry < received_date.date():
            raise ValidationError(
                f"Expiry date {expiry} precedes received date {received_date.date()}",
                details={'expiry_date': str(expiry), 'received_date': str(received_date.date())}
            )

        if batch_code is not None and not str(batch_code).strip():
            raise ValidationError("Batch code cannot be blank")

        code = str(batch_code).strip() if batch_code else self.generate_batch_code(
            product.product_code, received_date
        )

        batch = Batch(
            batch_code=code,
            product_id=product.id,
            quantity_received=quantity_received,
            unit_cost=cost,
            expiry_date=expiry,
            received_date=received_date
        )
        self.session.add(batch)
        self.session.flush()

        return batch

    def get_batch(self, batch_id: int) -> Optional[Batch]:
        return self.session.get(Batch, batch_id)

    def get_batches(self, product_code: str) -> List[Batch]:
        """Get all batches of a product, oldest first."""
        code = normalize_product_code(product_code)
        return self.session.query(Batch).join(Product).filter(
            Product.product_code == code
        ).order_by(Batch.received_date, Batch.id).all()

    def total_received(self, product_code: str) -> int:
        code = normalize_product_code(product_code)
        total = self.session.query(
            func.coalesce(func.sum(Batch.quantity_received), 0)
        ).select_from(Batch).join(Product).filter(
            Product.product_code == code
        ).scalar()
        return int(total or 0)

    def unit_cost_summary(self, product_code: str) -> Optional[Decimal]:
        """Weighted average unit cost across all batches of a product."""
        batches = self.get_batches(product_code)
        received = sum(b.quantity_received for b in batches)
        if not received:
            return None
        cost = sum(Decimal(b.unit_cost or 0) * b.quantity_received for b in batches)
        return to_money(cost / received)
