# inventory_ledger/core/reorder.py
import enum
from typing import Dict, Optional

import numpy as np

from inventory_ledger.exceptions import ReorderError

SAFETY_FLOOR = 50
CRITICAL_LEVEL = 50

class VelocityTier(enum.Enum):
    FAST = 'FAST'
    MEDIUM = 'MEDIUM'
    SLOW = 'SLOW'
    NEW = 'NEW'

    def __str__(self):
        return self.value

class Severity(enum.Enum):
    CRITICAL = 'CRITICAL'
    CONSIDER = 'CONSIDER'

    def __str__(self):
        return self.value

# Tier rules: (min transactions, min units sold, capacity fraction, tier floor)
# A tier applies when either minimum is met; tiers are checked in order.
TIER_RULES = [
    (VelocityTier.FAST, 10, 50, 0.40, 20),
    (VelocityTier.MEDIUM, 3, 15, 0.25, 10),
    (VelocityTier.SLOW, 1, 1, 0.15, 5),
]
NEW_PRODUCT_RULE = (0.20, 10)

# Suggested order buffer and minimum order per tier
ORDER_BUFFERS = {
    VelocityTier.FAST: (50, 30),
    VelocityTier.MEDIUM: (25, 25),
    VelocityTier.SLOW: (15, 20),
    VelocityTier.NEW: (20, 25),
}

def classify_velocity(transaction_count: int, units_sold: int) -> VelocityTier:
    """Classify a product's sales velocity over the sales window.

    Args:
        transaction_count: Number of sale lines in the window
        units_sold: Units sold in the window

    Returns:
        VelocityTier
    """
    transaction_count = transaction_count or 0
    units_sold = units_sold or 0

    for tier, min_transactions, min_units, _, _ in TIER_RULES:
        if transaction_count >= min_transactions or units_sold >= min_units:
            return tier

    return VelocityTier.NEW

def calculate_tier_target(tier: VelocityTier, capacity: int) -> int:
    """Raw reorder target for a tier: a fraction of capacity, floored per tier.

    Args:
        tier: Velocity tier
        capacity: Estimated stock capacity for the product

    Returns:
        Tier target in units
    """
    if capacity is None or capacity < 0:
        raise ReorderError(f"Capacity must be a non-negative integer, got {capacity}")

    if tier == VelocityTier.NEW:
        fraction, floor = NEW_PRODUCT_RULE
    else:
        fraction, floor = next(
            (rule[3], rule[4]) for rule in TIER_RULES if rule[0] == tier
        )

    return max(int(capacity * fraction), floor)

def calculate_reorder_threshold(
    tier: VelocityTier,
    capacity: int,
    safety_floor: int = SAFETY_FLOOR
) -> int:
    """Final reorder threshold: the tier target, never below the safety floor."""
    return max(calculate_tier_target(tier, capacity), safety_floor)

def determine_severity(current_stock: int, critical_level: int = CRITICAL_LEVEL) -> Severity:
    """CRITICAL below the critical level regardless of tier, CONSIDER otherwise."""
    if current_stock < critical_level:
        return Severity.CRITICAL
    return Severity.CONSIDER

def calculate_suggested_order(
    tier: VelocityTier,
    current_stock: int,
    threshold: int,
    order_multiple: int = 1
) -> int:
    """Suggested replenishment quantity for a product that needs reordering.

    Args:
        tier: Velocity tier
        current_stock: Current total stock
        threshold: Final reorder threshold
        order_multiple: Pack size the order is rounded up to

    Returns:
        Units to order
    """
    buffer, minimum = ORDER_BUFFERS[tier]
    quantity = max(threshold - current_stock + buffer, minimum)

    if order_multiple and order_multiple > 1:
        quantity = int(np.ceil(quantity / order_multiple) * order_multiple)

    return int(quantity)

def assess_reorder(
    current_stock: int,
    capacity: int,
    transaction_count: int,
    units_sold: int,
    safety_floor: int = SAFETY_FLOOR,
    critical_level: int = CRITICAL_LEVEL,
    order_multiple: int = 1
) -> Dict:
    """Evaluate whether a product needs reordering.

    Args:
        current_stock: Current total stock across locations
        capacity: Estimated stock capacity
        transaction_count: Sales transactions in the window
        units_sold: Units sold in the window
        safety_floor: Minimum reorder threshold
        critical_level: Stock level below which the alert is CRITICAL
        order_multiple: Pack size for suggested orders

    Returns:
        Dictionary with the assessment
    """
    if current_stock is None or current_stock < 0:
        raise ReorderError(f"Current stock must be non-negative, got {current_stock}")

    tier = classify_velocity(transaction_count, units_sold)
    tier_target = calculate_tier_target(tier, capacity)
    threshold = max(tier_target, safety_floor)
    needs_reorder = current_stock <= threshold

    assessment = {
        'current_stock': current_stock,
        'capacity': capacity,
        'transaction_count': transaction_count,
        'units_sold': units_sold,
        'velocity_tier': tier,
        'tier_target': tier_target,
        'threshold': threshold,
        'needs_reorder': needs_reorder,
        'severity': None,
        'suggested_order_quantity': 0,
        'stock_pct_of_capacity': stock_percentage(current_stock, capacity)
    }

    if needs_reorder:
        assessment['severity'] = determine_severity(current_stock, critical_level)
        assessment['suggested_order_quantity'] = calculate_suggested_order(
            tier, current_stock, threshold, order_multiple
        )

    return assessment

def stock_percentage(current_stock: int, capacity: Optional[int]) -> float:
    """Current stock as a percentage of capacity."""
    if not capacity:
        return 0.0
    return round(100.0 * current_stock / capacity, 1)

def velocity_description(transaction_count: int, units_sold: int) -> str:
    """Short text describing a product's velocity, for reports."""
    tier = classify_velocity(transaction_count, units_sold)
    if tier == VelocityTier.NEW:
        return "No recent sales"

    average = round(units_sold / transaction_count, 1) if transaction_count else 0.0
    return (
        f"{tier.value.title()} moving ({transaction_count} transactions, "
        f"{units_sold} units sold, avg {average} per sale)"
    )
