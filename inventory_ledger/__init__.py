from .config import config
from .db import db, session_scope
from .logging_setup import logger, get_logger
from .exceptions import (
    LedgerError, ValidationError, CapacityExceededError, NotFoundError,
    InsufficientStockError, OutOfStockError, EmptyCartError, ReorderError,
    TransactionFailedError, CheckoutTimeoutError
)

__all__ = [
    'config',
    'db',
    'session_scope',
    'logger',
    'get_logger',
    'LedgerError',
    'ValidationError',
    'CapacityExceededError',
    'NotFoundError',
    'InsufficientStockError',
    'OutOfStockError',
    'EmptyCartError',
    'ReorderError',
    'TransactionFailedError',
    'CheckoutTimeoutError'
]
