"""RadioGateway implementation on top of bleak."""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from blelink.constants import (
    BLEAK_VERSION,
    ERR_ALREADY_CONNECTED,
    ERR_CONNECTION_FAIL,
    ERR_NO_CONNECTION,
    ERR_NO_SERVICE,
    ERR_NOT_AVAILABLE,
    ERR_OPERATION_TIMEOUT,
    ERR_SYSTEM_ERROR,
    ERROR_TIMEOUT,
    BLEConfig,
    logger,
)
from blelink.errors import BLEErrorHandler
from blelink.exceptions import GatewayError
from blelink.gateway import (
    AdvertisedDevice,
    DeviceFoundCallback,
    GattCharacteristic,
    GattService,
    GatewayListener,
)

_WRITE_PROPERTIES = frozenset({"write", "write-without-response"})
_NOTIFY_PROPERTIES = frozenset({"notify", "indicate"})


def advertisement_bytes(advertisement_data: Any) -> Optional[bytes]:
    """
    Rebuild the raw advertisement payload from bleak's parsed manufacturer data.

    The first manufacturer record is laid out as its little-endian company id followed
    by the vendor payload, which puts any embedded MAC at offset 2.
    """
    manufacturer_data = getattr(advertisement_data, "manufacturer_data", None) or {}
    for company_id, payload in manufacturer_data.items():
        return int(company_id).to_bytes(2, "little") + bytes(payload)
    return None


def to_characteristic(characteristic: Any) -> GattCharacteristic:
    properties = set(getattr(characteristic, "properties", None) or ())
    return GattCharacteristic(
        uuid=str(characteristic.uuid),
        read="read" in properties,
        write=bool(properties & _WRITE_PROPERTIES),
        notify=bool(properties & _NOTIFY_PROPERTIES),
    )


class BleakGateway:
    """Drives the host Bluetooth adapter through bleak.

    One BleakClient is kept per system id (the bleak device address). Links that drop
    without being asked to are reported to listeners as connection_state_change(False).
    """

    def __init__(self, adapter: Optional[str] = None):
        self.adapter = adapter
        self._listeners: List[GatewayListener] = []
        self._clients: Dict[str, BleakClient] = {}
        self._discovered: Dict[str, AdvertisedDevice] = {}
        self._scanner: Optional[BleakScanner] = None
        self._opened = False

    def add_listener(self, listener: GatewayListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: GatewayListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners):
            handler = getattr(listener, event)
            BLEErrorHandler.safe_execute(
                lambda handler=handler: handler(*args),
                error_msg=f"Error in gateway listener {event}",
            )

    def _scanner_kwargs(self) -> Dict[str, Any]:
        return {"adapter": self.adapter} if self.adapter else {}

    async def open_adapter(self) -> None:
        if self._opened:
            return
        logger.debug("Opening Bluetooth adapter (bleak %s)", BLEAK_VERSION)
        self._opened = True
        self._emit("on_adapter_state_change", True)

    async def close_adapter(self) -> None:
        await BLEErrorHandler.safe_cleanup(self.stop_discovery, "stop discovery")
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await BLEErrorHandler.safe_cleanup(client.disconnect, "client disconnect")
        self._discovered.clear()
        self._opened = False
        self._emit("on_adapter_state_change", False)

    async def start_discovery(
        self,
        on_device_found: DeviceFoundCallback,
        service_uuids: Optional[Sequence[str]] = None,
    ) -> None:
        if self._scanner is not None:
            await self.stop_discovery()

        def detection_callback(device, advertisement_data) -> None:
            found = AdvertisedDevice(
                system_id=device.address,
                name=device.name,
                local_name=getattr(advertisement_data, "local_name", None),
                advertisement=advertisement_bytes(advertisement_data),
                handle=device,
            )
            self._discovered[found.system_id] = found
            BLEErrorHandler.safe_execute(
                lambda: on_device_found(found), error_msg="Error in device-found callback"
            )

        scanner = BleakScanner(
            detection_callback=detection_callback,
            service_uuids=list(service_uuids) if service_uuids else None,
            **self._scanner_kwargs(),
        )
        try:
            await scanner.start()
        except BleakError as e:
            raise GatewayError(ERR_NOT_AVAILABLE, f"Unable to start scanning: {e}") from e
        self._scanner = scanner

    async def stop_discovery(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except BleakError as e:
            raise GatewayError(ERR_SYSTEM_ERROR, f"Unable to stop scanning: {e}") from e

    async def get_discovered_devices(self) -> List[AdvertisedDevice]:
        return list(self._discovered.values())

    async def connect(self, system_id: str, timeout: float) -> None:
        existing = self._clients.get(system_id)
        if existing is not None and existing.is_connected:
            raise GatewayError(ERR_ALREADY_CONNECTED)

        known = self._discovered.get(system_id)
        target = known.handle if known is not None and known.handle is not None else system_id
        client = BleakClient(
            target,
            disconnected_callback=lambda c: self._on_disconnected(system_id, c),
            timeout=timeout,
        )
        try:
            await client.connect()
        except asyncio.TimeoutError as e:
            raise GatewayError(
                ERR_OPERATION_TIMEOUT, ERROR_TIMEOUT.format(f"Connect to {system_id}", timeout)
            ) from e
        except BleakError as e:
            raise GatewayError(ERR_CONNECTION_FAIL, str(e)) from e
        self._clients[system_id] = client
        logger.debug("bleak client connected to %s", system_id)

    def _on_disconnected(self, system_id: str, client: Any) -> None:
        # Clients popped by an explicit disconnect are not reported
        if self._clients.get(system_id) is not client:
            return
        del self._clients[system_id]
        logger.debug("bleak reports %s disconnected", system_id)
        self._emit("on_connection_state_change", system_id, False)

    async def disconnect(self, system_id: str) -> None:
        client = self._clients.pop(system_id, None)
        if client is None:
            logger.debug("No bleak client for %s; nothing to disconnect", system_id)
            return
        try:
            await asyncio.wait_for(client.disconnect(), BLEConfig.DISCONNECT_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise GatewayError(
                ERR_OPERATION_TIMEOUT,
                ERROR_TIMEOUT.format(f"Disconnect from {system_id}", BLEConfig.DISCONNECT_TIMEOUT),
            ) from e
        except BleakError as e:
            raise GatewayError(ERR_SYSTEM_ERROR, str(e)) from e

    def _require_client(self, system_id: str) -> BleakClient:
        client = self._clients.get(system_id)
        if client is None or not client.is_connected:
            raise GatewayError(ERR_NO_CONNECTION, f"Not connected to {system_id}")
        return client

    def _require_service(self, system_id: str, service_uuid: str) -> Any:
        service = self._require_client(system_id).services.get_service(service_uuid)
        if service is None:
            raise GatewayError(ERR_NO_SERVICE, f"Service {service_uuid} not found on {system_id}")
        return service

    async def get_services(self, system_id: str) -> List[GattService]:
        client = self._require_client(system_id)
        return [GattService(uuid=str(service.uuid)) for service in client.services]

    async def get_characteristics(self, system_id: str, service_uuid: str) -> List[GattCharacteristic]:
        service = self._require_service(system_id, service_uuid)
        return [to_characteristic(characteristic) for characteristic in service.characteristics]

    def _require_characteristic(self, system_id: str, service_uuid: str, characteristic_uuid: str) -> Any:
        characteristic = self._require_service(system_id, service_uuid).get_characteristic(
            characteristic_uuid
        )
        if characteristic is None:
            raise GatewayError(
                ERR_NO_SERVICE,
                f"Characteristic {characteristic_uuid} not found on {system_id}",
            )
        return characteristic

    async def write(
        self,
        system_id: str,
        service_uuid: str,
        characteristic_uuid: str,
        data: bytes,
    ) -> None:
        client = self._require_client(system_id)
        characteristic = self._require_characteristic(system_id, service_uuid, characteristic_uuid)
        response = "write" in (getattr(characteristic, "properties", None) or ())
        try:
            await client.write_gatt_char(characteristic, bytes(data), response=response)
        except BleakError as e:
            raise GatewayError(ERR_SYSTEM_ERROR, str(e)) from e

    async def subscribe_notify(
        self,
        system_id: str,
        service_uuid: str,
        characteristic_uuid: str,
        enable: bool,
    ) -> None:
        client = self._require_client(system_id)
        characteristic = self._require_characteristic(system_id, service_uuid, characteristic_uuid)
        try:
            if enable:
                await client.start_notify(
                    characteristic,
                    lambda _sender, data: self._emit(
                        "on_characteristic_value_change",
                        system_id,
                        characteristic_uuid,
                        bytes(data),
                    ),
                )
            else:
                await client.stop_notify(characteristic)
        except BleakError as e:
            raise GatewayError(ERR_SYSTEM_ERROR, str(e)) from e

    async def get_connected_devices(self, service_filter: Sequence[str]) -> List[str]:
        wanted = {uuid.lower() for uuid in service_filter or ()}
        connected: List[str] = []
        for system_id, client in list(self._clients.items()):
            if not client.is_connected:
                continue
            if wanted:
                offered = {str(service.uuid).lower() for service in client.services}
                if not wanted & offered:
                    continue
            connected.append(system_id)
        return connected


__all__ = ["BleakGateway", "advertisement_bytes", "to_characteristic"]
