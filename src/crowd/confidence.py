"""
Confidence scoring for crowd aggregates
"""
import math

# Sample count at which the volume term reaches 1 - 1/e
SAMPLE_SCALE = 50.0
VARIANCE_SCALE = 100.0
VARIANCE_FLOOR = 0.3


def confidence(sample_count: int, std_deviation: float) -> float:
    """
    Score how far a crowd aggregate can be trusted.

    The volume term ``1 - e^(-n/50)`` approaches 1 as samples accumulate; the
    variance multiplier ``max(0.3, 1 - std/100)`` discounts noisy cells but
    never below 30% of the volume term. Rounded to two decimals, in [0, 1].
    """
    n = max(0, sample_count)
    sample_confidence = 1 - math.exp(-n / SAMPLE_SCALE)
    variance_multiplier = max(VARIANCE_FLOOR, 1 - max(0.0, std_deviation) / VARIANCE_SCALE)
    return round(min(1.0, sample_confidence * variance_multiplier), 2)
