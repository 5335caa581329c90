"""Exception hierarchy for the smart-garden backend.

Services raise these; ``main.py`` maps ``http_status`` to the response code.

::

    GardenError (500)
    ├── ValidationError      (400)
    ├── PermissionDenied     (403)
    ├── NotFoundError        (404)
    ├── ConflictError        (409)
    │   └── DuplicateDeviceError
    ├── ConfigurationError   (500, fatal at startup)
    └── UpstreamError        (502)

Telemetry rejections are not errors: the router reports them through its
result object and drops the message.
"""

from typing import Optional


class GardenError(Exception):
    http_status: int = 500

    def __init__(self, message: str = "", *, detail: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(GardenError):
    """Caller supplied invalid or incomplete input."""

    http_status = 400


class PermissionDenied(GardenError):
    http_status = 403


class NotFoundError(GardenError):
    http_status = 404


class ConflictError(GardenError):
    """Operation conflicts with existing state (duplicates)."""

    http_status = 409


class DuplicateDeviceError(ConflictError):
    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device {device_id} is already registered", detail={"deviceId": device_id})
        self.device_id = device_id


class ConfigurationError(GardenError):
    """Missing or invalid configuration. The process must not start."""

    http_status = 500


class UpstreamError(GardenError):
    """The cloud broker or its REST API failed or answered with an error."""

    http_status = 502
