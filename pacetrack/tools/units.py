from __future__ import annotations

from ..domain.models import MeasurementType

METERS_TO_KILOMETERS = 0.001
METERS_TO_MILES = 0.000621371


def conversion_value(units: MeasurementType) -> float:
    """Factor converting meters into the display unit."""
    if units is MeasurementType.IMPERIAL:
        return METERS_TO_MILES
    return METERS_TO_KILOMETERS


def unit_label(units: MeasurementType) -> str:
    return "mi" if units is MeasurementType.IMPERIAL else "km"


def format_distance(meters: float, units: MeasurementType = MeasurementType.METRIC) -> str:
    """
    Render a distance in the preferred unit with two decimals.

    Examples:
        format_distance(0) -> "0.00 km"
        format_distance(1609.344, MeasurementType.IMPERIAL) -> "1.00 mi"
    """
    if meters == 0:
        return f"0.00 {unit_label(units)}"
    return f"{round(meters * conversion_value(units), 2):.2f} {unit_label(units)}"


def format_pace(speed_mps: float, units: MeasurementType = MeasurementType.METRIC) -> str:
    """
    Render a speed (m/s) as minutes per unit, "mm:ss per km".

    The minutes value is rounded to two decimals before conversion.
    """
    label = unit_label(units)
    if speed_mps <= 0:
        return f"00:00 per {label}"

    minutes_per_unit = round(1 / (speed_mps * conversion_value(units) * 60.0), 2)
    total_seconds = round(minutes_per_unit * 60_000) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    # Hours are dropped, only the minute-of-hour is shown
    return f"{minutes % 60:02d}:{seconds:02d} per {label}"


def format_duration(seconds: int) -> str:
    """Render whole seconds as H:MM:SS."""
    hours, rest = divmod(max(0, int(seconds)), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"
