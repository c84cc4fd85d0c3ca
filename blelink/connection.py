"""Connection orchestration: the adapter → scan → connect → GATT handshake."""

import asyncio
from dataclasses import dataclass, replace
from typing import List, Optional, Union

from blelink.constants import (
    ALREADY_CONNECTED_CODES,
    ERROR_CONNECTION_FAILED,
    ERROR_NO_SERVICES,
    ERROR_NOT_REGISTERED,
    ERROR_TIMEOUT,
    BLEConfig,
    logger,
)
from blelink.discovery import Scanner
from blelink.errors import BLEErrorHandler
from blelink.events import TOPIC_CONNECTION_ESTABLISHED, GatewayEventRouter, publish
from blelink.exceptions import (
    AdapterUnavailable,
    ConnectFailed,
    DeviceNotFound,
    GatewayError,
    InvalidIdentifier,
    OperationTimeout,
    ServiceMatchFailed,
)
from blelink.gateway import AdvertisedDevice, GattService, RadioGateway
from blelink.gating import ConnectionGate
from blelink.matcher import (
    MatchPolicy,
    MatchType,
    PolicyLike,
    as_policy,
    evaluate,
    match_services_characteristics,
    selection_for,
)
from blelink.registry import CloseCallback, ConnectionRecord, DeviceRegistry, NotifyCallback
from blelink.state import ConnectionState, ConnectionStateTracker


# Unset on a later connect() means "keep what the live record already has"
_INHERITED_FIELDS = ("match_services", "match_write", "match_notify", "on_notify", "on_close")


@dataclass
class DeviceOption:
    """Caller-supplied description of the peripheral to connect to.

    `match_services`, `match_write` and `match_notify` accept a MatchPolicy or a
    plain string, compiled regex or callable (see `blelink.matcher.as_policy`).
    """

    identifier: str
    match_services: PolicyLike = None
    match_write: PolicyLike = None
    match_notify: PolicyLike = None
    force_rescan: bool = False
    on_notify: Optional[NotifyCallback] = None
    on_close: Optional[CloseCallback] = None
    scan_timeout: float = BLEConfig.SCAN_TIMEOUT
    connect_timeout: float = BLEConfig.CONNECT_TIMEOUT

    def inherit(self, previous: Optional["DeviceOption"]) -> "DeviceOption":
        """Return a copy with matchers and callbacks left unset here taken from `previous`."""
        if previous is None:
            return self
        inherited = {
            name: getattr(previous, name)
            for name in _INHERITED_FIELDS
            if getattr(self, name) is None and getattr(previous, name) is not None
        }
        return replace(self, **inherited) if inherited else self

    @classmethod
    def coerce(cls, option: Union["DeviceOption", str]) -> "DeviceOption":
        """Accept either a DeviceOption or a bare identifier string."""
        if isinstance(option, cls):
            return option
        if isinstance(option, str):
            return cls(identifier=option)
        raise InvalidIdentifier(f"Invalid device option: {option!r}")


class ConnectionOrchestrator:
    """Drives one connect attempt at a time per identifier through the handshake.

    The orchestrator owns no state of its own beyond the gateway listener
    installation flag: link state lives in the registry, scan state in the scanner
    and per-identifier exclusion in the gate.
    """

    def __init__(
        self,
        gateway: RadioGateway,
        registry: DeviceRegistry,
        *,
        scanner: Optional[Scanner] = None,
        gate: Optional[ConnectionGate] = None,
        router: Optional[GatewayEventRouter] = None,
        service_policy: PolicyLike = None,
        characteristic_policy: PolicyLike = None,
    ):
        self.gateway = gateway
        self.registry = registry
        self.scanner = scanner or Scanner(gateway)
        self.gate = gate or ConnectionGate()
        self.router = router or GatewayEventRouter(registry)
        self.service_policy = as_policy(service_policy)
        self.characteristic_policy = as_policy(characteristic_policy)
        self._listener_installed = False

    async def connect(
        self, option: Union[DeviceOption, str], force_rescan: Optional[bool] = None
    ) -> ConnectionRecord:
        """
        Establish (or re-verify) the link for `option.identifier` and return its record.

        Calling this again for an identifier that is already ready re-checks that the
        link is actually up but skips scanning, discovery and matching. Matchers and
        callbacks that `option` leaves unset are kept from the existing record's
        option, so a bare-identifier call does not drop `on_notify` or `on_close`.

        Parameters:
            option: The device to connect to, or a bare identifier.
            force_rescan (Optional[bool]): Overrides `option.force_rescan` when given.

        Returns:
            ConnectionRecord: The registry record for the ready link.

        Raises:
            AdapterUnavailable: The radio adapter could not be opened.
            ScanTimeout: The device was not seen before the scan timer fired.
            DeviceNotFound: Discovery produced no device for the identifier.
            ConnectFailed: The gateway refused the connection.
            OperationTimeout: The gateway never answered the connect request.
            ServiceMatchFailed: No discovered service satisfied the service policy.
            CharacteristicMatchFailed: No write (or notify) characteristic matched.
        """
        option = DeviceOption.coerce(option)
        if not option.identifier or not isinstance(option.identifier, str):
            raise InvalidIdentifier(f"Invalid device identifier: {option.identifier!r}")
        rescan = option.force_rescan if force_rescan is None else force_rescan
        async with self.gate.lock_for(option.identifier):
            previous = self.registry.lookup(option.identifier)
            if previous is not None:
                option = option.inherit(previous.option)
            return await self._establish(option, rescan)

    async def _establish(self, option: DeviceOption, force_rescan: bool) -> ConnectionRecord:
        identifier = option.identifier
        tracker = ConnectionStateTracker(identifier)
        system_id: Optional[str] = None
        existing: Optional[ConnectionRecord] = None
        link_up = False
        created = False
        logger.info("Connecting to %s%s", identifier, " (forced rescan)" if force_rescan else "")
        try:
            tracker.transition_to(ConnectionState.ADAPTER_INITIALIZING)
            await self._open_adapter()

            tracker.transition_to(ConnectionState.CHECKING_EXISTING)
            existing = None if force_rescan else self.registry.lookup(identifier)
            live = False
            if existing is not None:
                system_id = existing.system_id
                live = await self._is_live(existing)
                link_up = live
                device = existing.device
            else:
                tracker.transition_to(ConnectionState.SCANNING)
                device = await self._find_device(option, force_rescan)
                system_id = device.system_id

            if not live:
                tracker.transition_to(ConnectionState.CONNECTING)
                await self._connect_link(device.system_id, option.connect_timeout)
                link_up = True

            if existing is not None:
                record = existing
            else:
                tracker.transition_to(ConnectionState.DISCOVERING_SERVICES)
                services = await self._discover_services(device.system_id, option)
                tracker.transition_to(ConnectionState.MATCHING_CHARACTERISTICS)
                write_policy = self._write_policy(option)
                write_match = match_services_characteristics(
                    services, selection_for(write_policy, MatchType.WRITE), write_policy
                )
                record = ConnectionRecord(
                    identifier=identifier,
                    device=device,
                    write_service_uuid=write_match.service_uuid,
                    write_characteristic_uuid=write_match.characteristic_uuid,
                    services=services,
                    option=option,
                )
                self.registry.upsert(identifier, record)
                created = True

            if option.on_notify is not None and not (live and record.notifying):
                tracker.transition_to(ConnectionState.SUBSCRIBING_NOTIFY)
                await self._subscribe_notify(record, option)

            record.on_notify = option.on_notify
            record.on_close = option.on_close
            record.option = option
            tracker.transition_to(ConnectionState.READY)
        except Exception:
            tracker.fail()
            logger.warning("Failed to connect to %s", identifier, exc_info=True)
            if created or existing is not None:
                self.registry.remove(identifier)
            if link_up and system_id is not None:
                await BLEErrorHandler.safe_cleanup(
                    lambda: self.gateway.disconnect(system_id), "disconnect after failure"
                )
            raise

        logger.info("Connection ready for %s (%s)", identifier, record.system_id)
        publish(TOPIC_CONNECTION_ESTABLISHED, identifier=identifier, system_id=record.system_id)
        return record

    async def _open_adapter(self) -> None:
        try:
            await self.gateway.open_adapter()
        except GatewayError as e:
            raise AdapterUnavailable(f"Bluetooth adapter unavailable ({e.code}): {e.message}") from e
        if not self._listener_installed:
            self.gateway.add_listener(self.router)
            self._listener_installed = True

    async def _is_live(self, record: ConnectionRecord) -> bool:
        """Ask the gateway whether the record's link is really up; cached state is not trusted."""
        try:
            connected = await self.gateway.get_connected_devices([record.write_service_uuid])
        except GatewayError as e:
            logger.debug("Connected-device query failed for %s: %s", record.identifier, e)
            return False
        live = record.system_id in connected
        logger.debug("Link to %s is %s", record.identifier, "live" if live else "down")
        return live

    async def _find_device(self, option: DeviceOption, force_rescan: bool) -> AdvertisedDevice:
        if not force_rescan:
            known = await self.scanner.find_known_device(option.identifier)
            if known is not None:
                logger.debug("Reusing previously discovered %s", known.device.system_id)
                return known.device
        matches = await self.scanner.scan(option.identifier, timeout=option.scan_timeout)
        if not matches:
            raise DeviceNotFound(f"Device '{option.identifier}' not found")
        return matches[0].device

    async def _connect_link(self, system_id: str, timeout: float) -> None:
        guard = timeout + BLEConfig.CONNECT_GUARD_GRACE
        try:
            await asyncio.wait_for(self.gateway.connect(system_id, timeout), guard)
        except asyncio.TimeoutError as e:
            raise OperationTimeout(ERROR_TIMEOUT.format(f"Connect to {system_id}", guard)) from e
        except GatewayError as e:
            if e.code in ALREADY_CONNECTED_CODES:
                logger.debug("%s already connected (%s)", system_id, e.code)
                return
            raise ConnectFailed(e.code, ERROR_CONNECTION_FAILED.format(system_id, e.message)) from e

    async def _discover_services(self, system_id: str, option: DeviceOption) -> List[GattService]:
        policy = as_policy(option.match_services) or self.service_policy
        services = await self.gateway.get_services(system_id)
        kept = [service for service in services if evaluate(policy, service.uuid)]
        if not kept:
            raise ServiceMatchFailed(ERROR_NO_SERVICES.format(system_id))
        resolved: List[GattService] = []
        for service in kept:
            characteristics = await self.gateway.get_characteristics(system_id, service.uuid)
            resolved.append(GattService(uuid=service.uuid, characteristics=list(characteristics)))
        logger.debug("Discovered %d matching service(s) on %s", len(resolved), system_id)
        return resolved

    def _write_policy(self, option: DeviceOption) -> Optional[MatchPolicy]:
        return as_policy(option.match_write) or self.characteristic_policy

    async def _subscribe_notify(self, record: ConnectionRecord, option: DeviceOption) -> None:
        policy = as_policy(option.match_notify)
        notify_match = match_services_characteristics(
            record.services, selection_for(policy, MatchType.NOTIFY), policy
        )
        record.notify_service_uuid = notify_match.service_uuid
        record.notify_characteristic_uuid = notify_match.characteristic_uuid
        try:
            await self.gateway.subscribe_notify(
                record.system_id,
                notify_match.service_uuid,
                notify_match.characteristic_uuid,
                True,
            )
        except Exception as e:  # noqa: BLE001 - a missing notify stream must not fail the link
            logger.warning("Notification subscription failed for %s: %s", record.identifier, e)
            record.notifying = False
            return
        record.notifying = True
        await asyncio.sleep(BLEConfig.NOTIFY_SETTLE_DELAY)

    async def disconnect(self, identifier: str) -> None:
        """
        Close the link for `identifier` at the caller's request.

        The record is removed before the gateway disconnect so the record's
        on_close callback does not fire for a caller-initiated close.

        Raises:
            DeviceNotFound: If no record exists for `identifier`.
        """
        record = self.registry.remove(identifier)
        if record is None:
            raise DeviceNotFound(ERROR_NOT_REGISTERED.format(identifier))
        logger.info("Closing connection to %s (%s)", identifier, record.system_id)
        try:
            await self.gateway.disconnect(record.system_id)
        finally:
            self.gate.release(identifier)

    async def reconnect(self, record: ConnectionRecord) -> ConnectionRecord:
        """Close `record`'s link and connect again with a forced rescan.

        Returns:
            ConnectionRecord: The fresh record; cached handles are re-resolved.
        """
        option = record.option or DeviceOption(identifier=record.identifier)
        logger.info("Reconnecting %s", record.identifier)
        if record.identifier in self.registry:
            await BLEErrorHandler.safe_cleanup(
                lambda: self.disconnect(record.identifier), "close before reconnect"
            )
        fresh = await self.connect(option, force_rescan=True)
        if self.registry.lookup(record.identifier) is None:
            raise DeviceNotFound(ERROR_NOT_REGISTERED.format(record.identifier))
        return fresh

    async def verify_connected(self, identifier: str) -> bool:
        """Return True only if a record exists and the gateway reports its link up."""
        record = self.registry.lookup(identifier)
        if record is None:
            return False
        return await self._is_live(record)


__all__ = ["ConnectionOrchestrator", "DeviceOption"]
