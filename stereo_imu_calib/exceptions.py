"""Exceptions raised while loading, saving and deriving calibration state."""

from typing import Any, Dict, Optional


class CalibrationError(Exception):
    """Base exception for calibration parameter handling."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class MissingFileError(CalibrationError):
    """The requested document does not exist or cannot be opened."""

    pass


class MalformedDocumentError(CalibrationError):
    """The document cannot be parsed or holds invalid values."""

    pass


class MissingRequiredFieldError(CalibrationError):
    """A key that must be present is absent."""

    pass


class UnrecognizedDeviceIdError(CalibrationError):
    """No calibration file is known for a device identifier."""

    pass


class DegenerateGeometryError(CalibrationError):
    """The stereo geometry cannot be rectified."""

    pass


class DegenerateTargetSizeError(CalibrationError):
    """The requested output image size has a zero or negative side."""

    pass


class WriteFailureError(CalibrationError):
    """The destination document could not be written."""

    pass


class RectificationUnavailableError(CalibrationError):
    """Undistortion maps are missing or stale for the current calibration."""

    pass
