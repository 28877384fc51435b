# inventory_ledger/services/location_service.py
from typing import Dict, List

from sqlalchemy.orm import Session

from inventory_ledger.models import InventoryLocation, LocationType, LOCATION_CODES
from inventory_ledger.exceptions import NotFoundError
from inventory_ledger.utils.validation import normalize_location_code
from inventory_ledger.logging_setup import get_logger

logger = get_logger('inventory')

class LocationService:
    """Registry of the fixed stocking locations."""

    def __init__(self, session: Session):
        """Initialize the location service.

        Args:
            session: Database session
        """
        self.session = session

    def seed_default_locations(self) -> int:
        """Create the warehouse, shelf and online locations if missing.

        Returns:
            Number of locations created
        """
        existing = {
            code for (code,) in self.session.query(InventoryLocation.location_code).all()
        }

        created = 0
        for code, (location_type, name) in LOCATION_CODES.items():
            if code in existing:
                continue

            self.session.add(InventoryLocation(
                location_code=code,
                location_name=name,
                location_type=location_type,
                is_active=True
            ))
            created += 1
            logger.info(f"Created inventory location: {code}")

        self.session.commit()
        return created

    def get_location(self, location_code: str) -> InventoryLocation:
        """Get an active location by code.

        Raises:
            NotFoundError if the code is unknown or inactive
        """
        code = normalize_location_code(location_code)
        location = self.session.query(InventoryLocation).filter(
            InventoryLocation.location_code == code,
            InventoryLocation.is_active == True
        ).first()

        if location is None:
            raise NotFoundError(
                f"Inventory location {code} not found",
                details={'location_code': code}
            )

        return location

    def get_locations(self, active_only: bool = True) -> List[InventoryLocation]:
        query = self.session.query(InventoryLocation)
        if active_only:
            query = query.filter(InventoryLocation.is_active == True)
        return query.order_by(InventoryLocation.id).all()

    def location_types(self) -> Dict[str, LocationType]:
        """Map of active location codes to their types."""
        return {loc.location_code: loc.location_type for loc in self.get_locations()}
