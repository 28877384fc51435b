class LedgerError(Exception):
    """Base exception for Inventory Ledger errors."""

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
        """
        self.message = message or "An error occurred in the Inventory Ledger"
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        """String representation of the error."""
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a dictionary."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class ConfigError(LedgerError):
    """Exception raised for configuration errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Configuration error"
        super().__init__(message, code, details)


class DatabaseError(LedgerError):
    """Exception raised for database-related errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Database error"
        super().__init__(message, code, details)


class ValidationError(LedgerError):
    """Exception raised for malformed input."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Validation error"
        super().__init__(message, code, details)


class CapacityExceededError(ValidationError):
    """Exception raised when a location record would exceed its capacity."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Location capacity exceeded"
        super().__init__(message, code or 'CAPACITY_EXCEEDED', details)


class NotFoundError(LedgerError):
    """Exception raised when a product, location or batch code is unknown."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Resource not found"
        super().__init__(message, code, details)


class StockError(LedgerError):
    """Base for errors that report requested versus available stock."""

    def __init__(self, message=None, code=None, details=None, product_code=None,
                 location_code=None, requested=None, available=None):
        details = dict(details or {})
        if product_code is not None:
            details['product_code'] = product_code
        if location_code is not None:
            details['location_code'] = location_code
        if requested is not None:
            details['requested'] = requested
        if available is not None:
            details['available'] = available

        self.product_code = product_code
        self.location_code = location_code
        self.requested = requested
        self.available = available
        super().__init__(message, code, details or None)


class InsufficientStockError(StockError):
    """Exception raised when an atomic decrement finds too little stock."""

    def __init__(self, message=None, code=None, details=None, **kwargs):
        message = message or "Insufficient stock"
        super().__init__(message, code or 'INSUFFICIENT_STOCK', details, **kwargs)


class OutOfStockError(StockError):
    """Exception raised when a cart or checkout request exceeds availability."""

    def __init__(self, message=None, code=None, details=None, **kwargs):
        message = message or "Product is out of stock"
        super().__init__(message, code or 'OUT_OF_STOCK', details, **kwargs)


class EmptyCartError(LedgerError):
    """Exception raised when checking out or validating an empty cart."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Cart is empty"
        super().__init__(message, code or 'EMPTY_CART', details)


class ReorderError(LedgerError):
    """Exception raised for reorder evaluation errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Reorder evaluation error"
        super().__init__(message, code, details)


class TransactionFailedError(LedgerError):
    """Exception raised when a multi-step operation is rolled back."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Transaction failed and was rolled back"
        super().__init__(message, code or 'TRANSACTION_FAILED', details)


class CheckoutTimeoutError(TransactionFailedError):
    """Exception raised when checkout exceeds its deadline."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Checkout timed out"
        super().__init__(message, code or 'CHECKOUT_TIMEOUT', details)
