"""BLE constants and configuration."""

import importlib.metadata
import logging
from typing import Dict, FrozenSet

logger = logging.getLogger("blelink")

# Get bleak version using importlib.metadata (reliable method)
try:
    BLEAK_VERSION = importlib.metadata.version("bleak")
except importlib.metadata.PackageNotFoundError:  # pragma: no cover - bleak is a hard dependency
    BLEAK_VERSION = "unknown"


class BLEConfig:
    """Configuration constants for BLE operations."""

    SCAN_TIMEOUT = 10.0
    CONNECT_TIMEOUT = 10.0
    # Extra time granted on top of CONNECT_TIMEOUT before the local guard gives up
    CONNECT_GUARD_GRACE = 2.0
    GATT_IO_TIMEOUT = 10.0
    DISCONNECT_TIMEOUT = 5.0
    CHUNK_SIZE = 20
    MAC_OFFSET = 2
    MAC_LENGTH = 6
    NOTIFY_SETTLE_DELAY = 0.1
    QUEUE_POST_DELAY = 0.1


# Host radio status codes
ERR_OK = 0
ERR_NOT_INIT = 10000
ERR_NOT_AVAILABLE = 10001
ERR_NO_DEVICE = 10002
ERR_CONNECTION_FAIL = 10003
ERR_NO_SERVICE = 10004
ERR_NO_CHARACTERISTIC = 10005
ERR_NO_CONNECTION = 10006
ERR_PROPERTY_NOT_SUPPORTED = 10007
ERR_SYSTEM_ERROR = 10008
ERR_SYSTEM_NOT_SUPPORTED = 10009
ERR_ALREADY_CONNECTED = 10010
ERR_NEED_PIN = 10011
ERR_OPERATION_TIMEOUT = 10012
ERR_INVALID_DATA = 10013
ERR_ALREADY_CONNECTED_LEGACY = -1

# blelink's own codes
ERR_ADAPTER_UNAVAILABLE = -99
ERR_INVALID_IDENTIFIER = -98
ERR_SCAN_TIMEOUT = -97
ERR_DEVICE_NOT_FOUND = -96
ERR_SERVICE_MATCH_FAILED = -95
ERR_CHARACTERISTIC_MATCH_FAILED = -94

# Statuses from connect() that mean the link is already up
ALREADY_CONNECTED_CODES: FrozenSet[int] = frozenset(
    {ERR_ALREADY_CONNECTED_LEGACY, ERR_ALREADY_CONNECTED}
)

ERROR_MESSAGES: Dict[int, str] = {
    ERR_ADAPTER_UNAVAILABLE: "Bluetooth adapter unavailable; turn on Bluetooth or location services",
    ERR_INVALID_IDENTIFIER: "Invalid device identifier",
    ERR_SCAN_TIMEOUT: "Timed out scanning for devices",
    ERR_DEVICE_NOT_FOUND: "Device not found",
    ERR_SERVICE_MATCH_FAILED: "No device service matched",
    ERR_CHARACTERISTIC_MATCH_FAILED: "No service characteristic matched",
    ERR_OK: "ok",
    ERR_NOT_INIT: "Bluetooth adapter not initialized",
    ERR_NOT_AVAILABLE: "Bluetooth adapter not available",
    ERR_NO_DEVICE: "Specified device not found",
    ERR_CONNECTION_FAIL: "Connection failed",
    ERR_NO_SERVICE: "Specified service not found",
    ERR_NO_CHARACTERISTIC: "Specified characteristic not found",
    ERR_NO_CONNECTION: "Connection has been lost",
    ERR_PROPERTY_NOT_SUPPORTED: "Characteristic does not support this operation",
    ERR_SYSTEM_ERROR: "System reported error",
    ERR_SYSTEM_NOT_SUPPORTED: "System does not support BLE",
    ERR_ALREADY_CONNECTED: "Already connected",
    ERR_NEED_PIN: "Pairing requires a PIN",
    ERR_OPERATION_TIMEOUT: "Connection timed out",
    ERR_INVALID_DATA: "Device id is empty or malformed",
}

# Error message templates
ERROR_TIMEOUT = "{0} timed out after {1:.1f} seconds"
ERROR_SCAN_TIMEOUT = "No device matching {0} found within {1:.1f} seconds"
ERROR_NO_SERVICES = "No service on {0} matched the service policy"
ERROR_NOT_REGISTERED = "No connection record for '{0}'"
ERROR_CONNECTION_FAILED = "Connection to {0} failed: {1}"
ERROR_WRITING_BLE = "Error writing BLE characteristic {0} on {1}: {2}"


def describe_code(code: int) -> str:
    """Return the human-readable message for a host or blelink status code."""
    return ERROR_MESSAGES.get(code, f"Unknown error ({code})")
