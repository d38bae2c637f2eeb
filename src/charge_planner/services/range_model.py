from __future__ import annotations

from charge_planner.exceptions import InvalidInputError

DEFAULT_CHARGE_TARGET_PERCENT = 90.0


def full_range_miles(current_range_miles: float, soc: float) -> float:
    if soc <= 0:
        raise InvalidInputError("State of charge must be greater than zero")
    return current_range_miles / (soc / 100.0)


def effective_range_miles(current_range_miles: float, buffer_percent: float) -> float:
    if not 0.0 <= buffer_percent < 1.0:
        raise InvalidInputError("Buffer percent must be in the range [0, 1)")
    return current_range_miles * (1.0 - buffer_percent)


def post_charge_range_miles(
    full_range: float, charge_target_percent: float = DEFAULT_CHARGE_TARGET_PERCENT
) -> float:
    return full_range * (charge_target_percent / 100.0)


def battery_percent(remaining_range_miles: float, full_range: float) -> float:
    return max(0.0, remaining_range_miles / full_range * 100.0)


def final_soc(
    start_soc: float, start_range_miles: float, distance_miles: float, full_range: float
) -> float:
    # start_soc is implied by start_range / full_range; only the ranges are used.
    return battery_percent(start_range_miles - distance_miles, full_range)
