class ChargePlannerError(Exception):
    """Base exception for charge planning errors."""


class InvalidInputError(ChargePlannerError):
    """Raised when vehicle state or trip endpoints are invalid."""


class ExternalServiceError(ChargePlannerError):
    """Raised when an upstream API call fails."""


class MalformedGeometryError(ChargePlannerError):
    """Raised when an encoded polyline ends in the middle of a value."""


class NoRouteFoundError(ChargePlannerError):
    """Raised when a drivable route cannot be generated."""


class NoStationFoundError(ChargePlannerError):
    """Raised when a station search returns no candidates."""
