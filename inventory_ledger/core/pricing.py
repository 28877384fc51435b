# inventory_ledger/core/pricing.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

CENT = Decimal('0.01')

def to_money(value: Union[Decimal, float, int, str, None]) -> Decimal:
    """Convert a value to a two-place Decimal, rounding half up."""
    if value is None:
        return Decimal('0.00')
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)

def calculate_final_price(
    base_price,
    discount_type=None,
    discount_value=None
) -> Decimal:
    """Apply a product discount to its base price.

    Args:
        base_price: Base price
        discount_type: DiscountType (or its string value), or None
        discount_value: Percentage (0-100) or absolute amount

    Returns:
        Final price, never below zero
    """
    base = to_money(base_price)
    if discount_type is None or not discount_value:
        return base

    kind = getattr(discount_type, 'value', discount_type)
    value = Decimal(str(discount_value))

    if kind == 'PERCENTAGE':
        discount = base * value / Decimal('100')
    elif kind == 'AMOUNT':
        discount = value
    else:
        raise ValueError(f"Unknown discount type: {discount_type}")

    return max(to_money(base - discount), Decimal('0.00'))

def calculate_line_total(unit_price, quantity: int) -> Decimal:
    """Unit price times quantity, rounded to cents."""
    return to_money(to_money(unit_price) * quantity)

def describe_discount(discount_type=None, discount_value=None) -> Optional[str]:
    """Human readable discount text for catalog listings."""
    if discount_type is None or not discount_value:
        return None

    kind = getattr(discount_type, 'value', discount_type)
    if kind == 'PERCENTAGE':
        return f"{Decimal(str(discount_value)):.1f}% off"
    return f"{to_money(discount_value)} off"
