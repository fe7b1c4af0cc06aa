from pacetrack.domain.models import MeasurementType
from pacetrack.tools.units import format_distance, format_duration, format_pace


def test_zero_distance():
    assert format_distance(0) == "0.00 km"
    assert format_distance(0, MeasurementType.IMPERIAL) == "0.00 mi"


def test_distance_in_kilometers():
    assert format_distance(12340) == "12.34 km"


def test_distance_in_miles():
    assert format_distance(1609.344, MeasurementType.IMPERIAL) == "1.00 mi"


def test_zero_pace():
    assert format_pace(0) == "00:00 per km"
    assert format_pace(0, MeasurementType.IMPERIAL) == "00:00 per mi"


def test_pace_per_kilometer():
    # 3 m/s -> 5.56 min/km
    assert format_pace(3.0) == "05:33 per km"


def test_pace_per_mile():
    # 6 mph -> 10 min/mi
    assert format_pace(2.68224, MeasurementType.IMPERIAL) == "10:00 per mi"


def test_duration():
    assert format_duration(0) == "0:00:00"
    assert format_duration(3725) == "1:02:05"
