from .pricing import calculate_final_price, calculate_line_total, to_money
from .reorder import (
    VelocityTier, Severity, SAFETY_FLOOR, CRITICAL_LEVEL,
    classify_velocity, calculate_tier_target, calculate_reorder_threshold,
    determine_severity, calculate_suggested_order, assess_reorder
)

__all__ = [
    'calculate_final_price',
    'calculate_line_total',
    'to_money',
    'VelocityTier',
    'Severity',
    'SAFETY_FLOOR',
    'CRITICAL_LEVEL',
    'classify_velocity',
    'calculate_tier_target',
    'calculate_reorder_threshold',
    'determine_severity',
    'calculate_suggested_order',
    'assess_reorder'
]
