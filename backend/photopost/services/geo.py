from __future__ import annotations

from typing import Any, Sequence

from photopost.pipelines.models import Accuracy

HIGH_ACCURACY_METERS = 10.0
MEDIUM_ACCURACY_METERS = 100.0


def as_float(value: Any) -> float:
    """Coerce EXIF rationals, (num, den) pairs and plain numbers to float."""
    if hasattr(value, "numerator") and hasattr(value, "denominator"):
        denominator = value.denominator
        if not denominator:
            return float(value.numerator)
        return value.numerator / denominator
    if isinstance(value, tuple) and len(value) == 2 and all(isinstance(v, (int, float)) for v in value):
        return value[0] / value[1] if value[1] else float(value[0])
    return float(value)


def dms_to_decimal(dms: Sequence[Any] | None, ref: str | None) -> float:
    """Convert a (degrees, minutes, seconds) tuple to signed decimal degrees.

    A tuple with fewer than three components yields 0.0, which callers treat as
    "no usable value".
    """
    if not dms or len(dms) < 3:
        return 0.0
    degrees, minutes, seconds = dms[0], dms[1], dms[2]
    value = as_float(degrees) + as_float(minutes) / 60 + as_float(seconds) / 3600
    if _normalise_ref(ref) in ("S", "W"):
        value *= -1
    return value


def classify_accuracy(radius_meters: float | None) -> Accuracy:
    if radius_meters is None:
        return Accuracy.LOW
    if radius_meters < HIGH_ACCURACY_METERS:
        return Accuracy.HIGH
    if radius_meters < MEDIUM_ACCURACY_METERS:
        return Accuracy.MEDIUM
    return Accuracy.LOW


def _normalise_ref(ref: Any) -> str:
    if isinstance(ref, bytes):
        ref = ref.decode("ascii", errors="ignore")
    return str(ref or "").strip("\x00 ").upper()
