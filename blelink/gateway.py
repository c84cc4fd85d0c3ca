"""Radio adapter gateway contract and the data types that cross it."""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol, Sequence


@dataclass(frozen=True)
class AdvertisedDevice:
    """A discovery result reported by the gateway.

    `advertisement` holds the raw advertisement payload (manufacturer data laid out
    as company id followed by the vendor bytes) or None when the peripheral sent none.
    `handle` is an opaque backend object the gateway may use to connect without rescanning.
    """

    system_id: str
    name: Optional[str] = None
    local_name: Optional[str] = None
    advertisement: Optional[bytes] = None
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GattCharacteristic:
    uuid: str
    read: bool = False
    write: bool = False
    notify: bool = False


@dataclass
class GattService:
    uuid: str
    characteristics: List[GattCharacteristic] = field(default_factory=list)


DeviceFoundCallback = Callable[[AdvertisedDevice], None]


class GatewayListener(Protocol):
    """Receiver for the gateway's event streams."""

    def on_adapter_state_change(self, available: bool) -> None: ...

    def on_connection_state_change(self, system_id: str, connected: bool) -> None: ...

    def on_characteristic_value_change(
        self, system_id: str, characteristic_uuid: str, data: bytes
    ) -> None: ...


class RadioGateway(Protocol):
    """Host-provided BLE hardware abstraction consumed by the connection core.

    Every fallible coroutine raises `blelink.exceptions.GatewayError` carrying a
    host status code (see `blelink.constants`). `write` must use `ERR_NO_SERVICE`
    when the addressed service or characteristic has vanished.
    """

    async def open_adapter(self) -> None: ...

    async def close_adapter(self) -> None: ...

    async def start_discovery(
        self,
        on_device_found: DeviceFoundCallback,
        service_uuids: Optional[Sequence[str]] = None,
    ) -> None: ...

    async def stop_discovery(self) -> None: ...

    async def get_discovered_devices(self) -> List[AdvertisedDevice]: ...

    async def connect(self, system_id: str, timeout: float) -> None: ...

    async def disconnect(self, system_id: str) -> None: ...

    async def get_services(self, system_id: str) -> List[GattService]: ...

    async def get_characteristics(
        self, system_id: str, service_uuid: str
    ) -> List[GattCharacteristic]: ...

    async def write(
        self,
        system_id: str,
        service_uuid: str,
        characteristic_uuid: str,
        data: bytes,
    ) -> None: ...

    async def subscribe_notify(
        self,
        system_id: str,
        service_uuid: str,
        characteristic_uuid: str,
        enable: bool,
    ) -> None: ...

    async def get_connected_devices(self, service_filter: Sequence[str]) -> List[str]: ...

    def add_listener(self, listener: GatewayListener) -> None: ...

    def remove_listener(self, listener: GatewayListener) -> None: ...


__all__ = [
    "AdvertisedDevice",
    "DeviceFoundCallback",
    "GattCharacteristic",
    "GattService",
    "GatewayListener",
    "RadioGateway",
]
