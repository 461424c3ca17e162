"""
Resolve the search location from what the client reports.

The browser does the actual positioning; it sends either the coordinates it
got, the error code it got instead, or the map viewport centre.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Optional

from domain.models import Location, LocationMode


class PositionErrorCode(IntEnum):
    """Geolocation API error codes."""
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3


_POSITION_ERROR_MESSAGES = {
    PositionErrorCode.PERMISSION_DENIED: "Location access denied by user",
    PositionErrorCode.POSITION_UNAVAILABLE: "Location information unavailable",
    PositionErrorCode.TIMEOUT: "Location request timed out",
}
DEFAULT_POSITION_ERROR = "Unable to get your location"
GEOLOCATION_UNSUPPORTED = "Geolocation is not supported by this browser"


class PositionError(Exception):
    """Positioning failed; str(error) is the message to show the user as-is."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code

    @classmethod
    def from_code(cls, code: int) -> "PositionError":
        try:
            message = _POSITION_ERROR_MESSAGES[PositionErrorCode(code)]
        except ValueError:
            message = DEFAULT_POSITION_ERROR
        return cls(message, code=code)


def resolve_location(
    mode: LocationMode,
    position: Optional[Location] = None,
    map_center: Optional[Location] = None,
    position_error: Optional[int] = None,
) -> Location:
    """Pick the search location for the chosen mode, raising PositionError if there is none."""
    if LocationMode(mode) == LocationMode.CURRENT:
        if position_error is not None:
            raise PositionError.from_code(position_error)
        if position is None:
            raise PositionError(GEOLOCATION_UNSUPPORTED)
        return position

    if map_center is None:
        raise PositionError("Map center is not available")
    return map_center
