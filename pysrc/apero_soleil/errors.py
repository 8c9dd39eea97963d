"""Apéro Soleil error types.

Run-level errors (missing inputs, unwritable output, bad configuration)
abort the batch. Per-terrace and per-slot errors are recoverable: the runner
catches them at the worker boundary and counts them in the run summary.

Example:
    try:
        summary = apero_soleil.run(config)
    except apero_soleil.InputNotFoundError as e:
        print(f"Missing {e.resource}: {e.path}")
    except apero_soleil.SerializationError as e:
        print(f"Could not write {e.path}: {e.reason}")
"""

from __future__ import annotations

from pathlib import Path


class AperoSoleilError(Exception):
    """Base class for all Apéro Soleil errors."""

    pass


class InputNotFoundError(AperoSoleilError):
    """Raised when the DSM or the terrace registry is missing or unreadable.

    Attributes:
        resource: Which input failed (e.g., "dsm", "terraces", "weather").
        path: Path of the offending file.
        reason: Optional detail about the failure.
    """

    def __init__(self, resource: str, path: str | Path, reason: str | None = None):
        self.resource = resource
        self.path = str(path)
        self.reason = reason
        message = f"Input '{resource}' not found or unreadable: {self.path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InvalidRasterError(InputNotFoundError):
    """Raised when the DSM exists but cannot be used.

    Only north-up rasters in a projected (metric) CRS are supported.

    Example:
        >>> load_dsm("dsm_wgs84.tif")
        InvalidRasterError: Input 'dsm' not found or unreadable: dsm_wgs84.tif
          (CRS is geographic; a projected CRS in metres is required)
    """

    def __init__(self, path: str | Path, reason: str):
        super().__init__("dsm", path, reason)


class OutOfCoverageError(AperoSoleilError):
    """Raised when a terrace's height buffer has no DSM coverage.

    Attributes:
        terrace_id: Identifier of the excluded terrace.
        latitude: Terrace latitude (WGS84).
        longitude: Terrace longitude (WGS84).
    """

    def __init__(self, terrace_id: str, latitude: float, longitude: float):
        self.terrace_id = terrace_id
        self.latitude = latitude
        self.longitude = longitude
        message = (
            f"Terrace '{terrace_id}' at ({latitude:.6f}, {longitude:.6f}) is outside the DSM coverage; "
            "it will be excluded from the output."
        )
        super().__init__(message)


class WeatherLookupError(AperoSoleilError):
    """Raised when cloud cover cannot be obtained for a date or slot.

    Attributes:
        reason: Why the lookup failed.
        slot: Time-slot key (e.g. "t0930") when the failure is slot specific.
    """

    def __init__(self, reason: str, slot: str | None = None):
        self.reason = reason
        self.slot = slot
        message = "Cloud cover unavailable"
        if slot:
            message += f" for slot {slot}"
        message += f": {reason}"
        super().__init__(message)


class SerializationError(AperoSoleilError):
    """Raised when the output file cannot be written.

    Attributes:
        path: Destination path.
        reason: Underlying OS or encoding error.
    """

    def __init__(self, path: str | Path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Failed to write output {self.path}: {reason}")


class ConfigurationError(AperoSoleilError):
    """Raised when configuration is invalid or inconsistent.

    Attributes:
        parameter: The problematic parameter name.
        reason: Why the configuration is invalid.
    """

    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        self.reason = reason
        message = f"Invalid configuration for '{parameter}': {reason}"
        super().__init__(message)
