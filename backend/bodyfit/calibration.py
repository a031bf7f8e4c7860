"""Scale resolution for converting pixel measurements to centimeters.

The conversion uses a known real-world reference length laid against the
frame's pixel height: either the user's total height or the height of a held
reference object (credit card, A4 sheet).
"""
import logging
from enum import Enum
from typing import Dict

logger = logging.getLogger(__name__)


class CalibrationMode(str, Enum):
    MANUAL = "manual"
    REFERENCE = "reference"


# Accepted reference lengths (exclusive bounds, cm) per mode
REFERENCE_LIMITS_CM = {
    CalibrationMode.MANUAL: (0.0, 300.0),
    CalibrationMode.REFERENCE: (0.0, 100.0),
}


class ScaleConfigurationError(ValueError):
    """No scale can be derived from the configured frame."""


def validate_reference_length(mode, value_cm: float) -> float:
    """Check a reference length against the limits of its calibration mode.

    Args:
        mode: CalibrationMode or its string value
        value_cm: User height (manual) or reference object height (reference)

    Returns:
        The value as float

    Raises:
        ValueError: if the mode is unknown or the value out of range
    """
    try:
        mode = CalibrationMode(mode)
    except ValueError:
        raise ValueError(f"Unknown calibration mode: {mode!r}")

    low, high = REFERENCE_LIMITS_CM[mode]
    value = float(value_cm)
    if not low < value < high:
        if mode is CalibrationMode.MANUAL:
            raise ValueError(f"Please enter a valid height between 1-{int(high)} cm")
        raise ValueError("Please enter a valid reference height")
    return value


def pixels_to_cm(pixels: float, frame_height_px: float, reference_length_cm: float) -> float:
    """Convert a pixel distance using ``reference_length_cm / frame_height_px``.

    Raises:
        ScaleConfigurationError: if the frame pixel height is zero
    """
    if frame_height_px == 0:
        raise ScaleConfigurationError("Frame pixel height is zero; no scale can be derived")
    return pixels * (reference_length_cm / frame_height_px)


class ScaleResolver:
    """Converts pixel distances to centimeters for one calibration."""

    def __init__(
        self,
        reference_length_cm: float,
        frame_height_px: float = 480,
        mode: CalibrationMode = CalibrationMode.MANUAL,
    ):
        """Initialize the resolver.

        Args:
            reference_length_cm: Known real-world length in cm
            frame_height_px: Pixel height of the reference frame

        Raises:
            ScaleConfigurationError: if frame_height_px is zero
        """
        if frame_height_px == 0:
            raise ScaleConfigurationError("Frame pixel height is zero; no scale can be derived")
        self.reference_length_cm = float(reference_length_cm)
        self.frame_height_px = float(frame_height_px)
        self.mode = CalibrationMode(mode)

    @property
    def cm_per_pixel(self) -> float:
        return self.reference_length_cm / self.frame_height_px

    def pixels_to_cm(self, pixels: float) -> float:
        """Convert pixel distance to centimeters."""
        return pixels_to_cm(pixels, self.frame_height_px, self.reference_length_cm)

    def get_calibration_status(self) -> Dict:
        """Get current calibration status.

        Returns:
            Status dict with calibration info
        """
        return {
            "calibrated": True,
            "cm_per_pixel": self.cm_per_pixel,
            "calibration_data": {
                "reference_length_cm": self.reference_length_cm,
                "frame_height_px": self.frame_height_px,
                "method": "user_height" if self.mode is CalibrationMode.MANUAL else "reference_object",
            },
        }
