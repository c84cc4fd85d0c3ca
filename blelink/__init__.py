"""BLE peripheral connection lifecycle management."""

from blelink.bleak_gateway import BleakGateway
from blelink.codec import buf2hex, encode_payload, hex2buf, str2buf
from blelink.connection import ConnectionOrchestrator, DeviceOption
from blelink.constants import BLEAK_VERSION, BLEConfig, describe_code, logger
from blelink.discovery import MatchedDevice, Scanner, match_device, parse_mac
from blelink.errors import BLEErrorHandler
from blelink.events import GatewayEventRouter
from blelink.exceptions import (
    AdapterUnavailable,
    BLEError,
    CharacteristicMatchFailed,
    ConnectFailed,
    DeviceNotFound,
    GatewayError,
    InvalidIdentifier,
    LinkVanished,
    OperationTimeout,
    ScanTimeout,
    ServiceMatchFailed,
    WriteFailed,
)
from blelink.gateway import (
    AdvertisedDevice,
    GattCharacteristic,
    GattService,
    GatewayListener,
    RadioGateway,
)
from blelink.gating import ConnectionGate
from blelink.manager import BLEManager, DeviceHandle
from blelink.matcher import (
    Exact,
    MatchPolicy,
    MatchType,
    Pattern,
    Predicate,
    as_policy,
    evaluate,
    match_characteristics,
    match_services_characteristics,
)
from blelink.registry import ConnectionRecord, DeviceRegistry
from blelink.state import ConnectionState, ConnectionStateTracker
from blelink.task_queue import TaskQueue, TaskState, WriteTask
from blelink.writer import WritePath

__all__ = [
    # Core classes
    "BLEManager",
    "DeviceHandle",
    "DeviceOption",
    "ConnectionOrchestrator",
    "ConnectionRecord",
    "DeviceRegistry",
    "GatewayEventRouter",
    "Scanner",
    "MatchedDevice",
    "WritePath",
    "TaskQueue",
    "TaskState",
    "WriteTask",
    "ConnectionGate",
    "ConnectionState",
    "ConnectionStateTracker",
    "BLEErrorHandler",
    "BleakGateway",
    # Gateway contract
    "RadioGateway",
    "GatewayListener",
    "AdvertisedDevice",
    "GattService",
    "GattCharacteristic",
    # Matching
    "MatchPolicy",
    "Exact",
    "Pattern",
    "Predicate",
    "MatchType",
    "as_policy",
    "evaluate",
    "match_characteristics",
    "match_services_characteristics",
    "match_device",
    "parse_mac",
    # Errors
    "BLEError",
    "GatewayError",
    "AdapterUnavailable",
    "InvalidIdentifier",
    "ScanTimeout",
    "DeviceNotFound",
    "ServiceMatchFailed",
    "CharacteristicMatchFailed",
    "ConnectFailed",
    "WriteFailed",
    "LinkVanished",
    "OperationTimeout",
    # Constants/helpers
    "BLEConfig",
    "BLEAK_VERSION",
    "buf2hex",
    "hex2buf",
    "str2buf",
    "encode_payload",
    "describe_code",
    "logger",
]
