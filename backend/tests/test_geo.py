from __future__ import annotations

import pytest
from PIL.TiffImagePlugin import IFDRational

from photopost.pipelines.models import Accuracy, GeoFix, LocationSource
from photopost.services.geo import as_float, classify_accuracy, dms_to_decimal


def test_dms_to_decimal_north_east() -> None:
    value = dms_to_decimal((IFDRational(52, 1), IFDRational(22, 1), IFDRational(12, 1)), "N")
    assert value == pytest.approx(52.37, abs=1e-6)


def test_dms_to_decimal_negates_south_and_west() -> None:
    assert dms_to_decimal((33, 52, 4.8), "S") == pytest.approx(-33.868, abs=1e-6)
    assert dms_to_decimal((151, 12, 36), b"W") == pytest.approx(-151.21, abs=1e-6)


def test_dms_to_decimal_short_tuple_is_zero() -> None:
    assert dms_to_decimal((52, 22), "N") == 0.0
    assert dms_to_decimal(None, "N") == 0.0


def test_as_float_handles_pairs_and_zero_denominator() -> None:
    assert as_float((1, 4)) == 0.25
    assert as_float((7, 0)) == 7.0
    assert as_float(IFDRational(3, 2)) == 1.5
    assert as_float("2.5") == 2.5


@pytest.mark.parametrize(
    ("radius", "expected"),
    [(None, Accuracy.LOW), (3, Accuracy.HIGH), (9.99, Accuracy.HIGH), (10, Accuracy.MEDIUM), (99, Accuracy.MEDIUM), (100, Accuracy.LOW)],
)
def test_classify_accuracy_thresholds(radius: float | None, expected: Accuracy) -> None:
    assert classify_accuracy(radius) is expected


def test_geofix_create_rejects_out_of_range_and_non_finite() -> None:
    kwargs = {"source": LocationSource.MANUAL, "accuracy": Accuracy.HIGH}
    assert GeoFix.create(90.0, 180.0, **kwargs) is not None
    assert GeoFix.create(-90.0, -180.0, **kwargs) is not None
    assert GeoFix.create(90.0001, 0.0, **kwargs) is None
    assert GeoFix.create(0.0, -180.5, **kwargs) is None
    assert GeoFix.create(float("nan"), 0.0, **kwargs) is None
    assert GeoFix.create(0.0, float("inf"), **kwargs) is None


def test_geofix_map_url() -> None:
    fix = GeoFix.create(48.85, 2.35, source=LocationSource.MANUAL, accuracy=Accuracy.HIGH)
    assert fix is not None
    assert fix.map_url == "https://maps.google.com/?q=48.85,2.35"
