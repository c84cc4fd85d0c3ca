"""Typed errors raised by blelink."""

from typing import Optional

from blelink.constants import (
    ERR_ADAPTER_UNAVAILABLE,
    ERR_CHARACTERISTIC_MATCH_FAILED,
    ERR_CONNECTION_FAIL,
    ERR_DEVICE_NOT_FOUND,
    ERR_INVALID_IDENTIFIER,
    ERR_NO_SERVICE,
    ERR_OPERATION_TIMEOUT,
    ERR_SCAN_TIMEOUT,
    ERR_SERVICE_MATCH_FAILED,
    ERR_SYSTEM_ERROR,
    describe_code,
)


class BLEError(Exception):
    """Base class for every error raised by blelink.

    Each subclass carries a stable integer ``code``; the message defaults to the
    standard description of that code.
    """

    code: int = ERR_SYSTEM_ERROR

    def __init__(self, message: Optional[str] = None, *, code: Optional[int] = None):
        if code is not None:
            self.code = code
        self.message = message or describe_code(self.code)
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code}, message={self.message!r})"


class GatewayError(BLEError):
    """A fault reported by the radio gateway, tagged with the host status code."""

    def __init__(self, code: int, message: Optional[str] = None):
        super().__init__(message, code=code)


class AdapterUnavailable(BLEError):
    code = ERR_ADAPTER_UNAVAILABLE


class InvalidIdentifier(BLEError):
    code = ERR_INVALID_IDENTIFIER


class ScanTimeout(BLEError):
    code = ERR_SCAN_TIMEOUT


class DeviceNotFound(BLEError):
    code = ERR_DEVICE_NOT_FOUND


class ServiceMatchFailed(BLEError):
    code = ERR_SERVICE_MATCH_FAILED


class CharacteristicMatchFailed(BLEError):
    code = ERR_CHARACTERISTIC_MATCH_FAILED


class ConnectFailed(BLEError):
    """Raised when the gateway refuses a connect request."""

    code = ERR_CONNECTION_FAIL

    def __init__(self, code: Optional[int] = None, message: Optional[str] = None):
        super().__init__(message, code=code)


class WriteFailed(BLEError):
    """Raised when a characteristic write fails for any reason other than a vanished link."""

    code = ERR_SYSTEM_ERROR

    def __init__(self, code: Optional[int] = None, message: Optional[str] = None):
        super().__init__(message, code=code)


class LinkVanished(BLEError):
    """The cached service/characteristic handles are no longer valid.

    The write path grants exactly one reconnect-and-retry for this error.
    """

    code = ERR_NO_SERVICE


class OperationTimeout(BLEError):
    code = ERR_OPERATION_TIMEOUT


__all__ = [
    "AdapterUnavailable",
    "BLEError",
    "CharacteristicMatchFailed",
    "ConnectFailed",
    "DeviceNotFound",
    "GatewayError",
    "InvalidIdentifier",
    "LinkVanished",
    "OperationTimeout",
    "ScanTimeout",
    "ServiceMatchFailed",
    "WriteFailed",
]
