"""Unit scaling applied to the final value of an indicator."""

from __future__ import annotations

MICROSECOND = "MicroSecond"
BYTE = "Byte"

# Response time metrics report microseconds even when no unit is known
RESPONSE_TIME_METRICS = ("builtin:service.response.time",)


def scale_value(value: float, unit: str = "", metric_id: str = "") -> float:
    """
    Scale a raw metric value into the unit indicators are reported in.

    Microseconds become milliseconds and bytes become kilobytes. With an
    explicit unit only the unit decides; without one the metric ID is used
    to recognise response time metrics.
    """
    if unit:
        if unit == MICROSECOND:
            return value / 1000.0
        if unit == BYTE:
            return value / 1024.0
        return value

    if any(metric in metric_id for metric in RESPONSE_TIME_METRICS):
        return value / 1000.0
    return value
