import re
from typing import Dict, Optional

from inventory_ledger.config import config
from inventory_ledger.exceptions import ValidationError

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

def normalize_product_code(product_code: str) -> str:
    """Trim and upper-case a product code.

    Raises:
        ValidationError if the code is empty
    """
    if product_code is None or not str(product_code).strip():
        raise ValidationError("Product code is required")
    return str(product_code).strip().upper()

def validate_product_code_format(product_code: str) -> str:
    """Check a product code against the configured fixed-width format.

    Args:
        product_code: Product code, e.g. 'LA-SO-001'

    Returns:
        Normalized product code
    """
    code = normalize_product_code(product_code)
    pattern = config.business_rules['product_code_pattern']

    if not re.match(pattern, code):
        raise ValidationError(
            f"Invalid product code format: {code}",
            details={'product_code': code, 'pattern': pattern}
        )

    return code

def normalize_location_code(location_code: str) -> str:
    if location_code is None or not str(location_code).strip():
        raise ValidationError("Location code is required")
    return str(location_code).strip().upper()

def require_positive_quantity(quantity, field: str = 'quantity') -> int:
    """Validate that a quantity is a positive whole number.

    Returns:
        The quantity as int
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"{field} must be a whole number", details={field: quantity})
    if quantity <= 0:
        raise ValidationError(f"{field} must be greater than zero", details={field: quantity})
    return quantity

def validate_customer_info(customer_info: Optional[Dict]) -> Dict[str, str]:
    """Validate checkout customer information.

    Args:
        customer_info: Dictionary with name, email, phone and optional address

    Returns:
        Dictionary with validation errors
    """
    errors = {}
    customer_info = customer_info or {}

    for field in ('name', 'email', 'phone'):
        value = customer_info.get(field)
        if value is None or not str(value).strip():
            errors[field] = f"Customer {field} is required"

    email = customer_info.get('email')
    if 'email' not in errors and not EMAIL_PATTERN.match(str(email).strip()):
        errors['email'] = 'Customer email is not a valid address'

    return errors

def normalize_customer_info(customer_info: Dict) -> Dict[str, Optional[str]]:
    """Trimmed string copies of validated customer fields; a blank address becomes None."""
    customer = {
        field: str(customer_info[field]).strip() for field in ('name', 'email', 'phone')
    }
    address = customer_info.get('address')
    customer['address'] = str(address).strip() or None if address else None
    return customer
