from .date_utils import convert_to_date, window_start, timestamp_code, days_until
from .validation import (
    normalize_product_code, validate_product_code_format, normalize_location_code,
    require_positive_quantity, validate_customer_info
)

__all__ = [
    'convert_to_date',
    'window_start',
    'timestamp_code',
    'days_until',
    'normalize_product_code',
    'validate_product_code_format',
    'normalize_location_code',
    'require_positive_quantity',
    'validate_customer_info'
]
