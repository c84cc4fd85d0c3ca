"""BLE device discovery: advertisement parsing, identifier matching and the scanner."""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from blelink.constants import (
    ERROR_SCAN_TIMEOUT,
    BLEConfig,
    logger,
)
from blelink.errors import BLEErrorHandler
from blelink.exceptions import InvalidIdentifier, ScanTimeout
from blelink.gateway import AdvertisedDevice, RadioGateway


@dataclass(frozen=True)
class MatchedDevice:
    identifier: str
    mac: str
    device: AdvertisedDevice


def parse_mac(advertisement: Any) -> str:
    """
    Extract the MAC-like value some peripherals embed in their advertisement payload.

    The six bytes at offset 2..8 (just after the company id) are rendered as
    colon-separated uppercase hex, e.g. ``11:22:33:44:55:AA``.

    Returns:
        str: The rendered address, or "" when the payload is absent or too short.
    """
    if not isinstance(advertisement, (bytes, bytearray, memoryview)):
        return ""
    start = BLEConfig.MAC_OFFSET
    window = bytes(advertisement)[start : start + BLEConfig.MAC_LENGTH]
    if len(window) != BLEConfig.MAC_LENGTH:
        return ""
    return ":".join(f"{octet:02X}" for octet in window)


def match_device(device: AdvertisedDevice, identifier: str) -> bool:
    """Case-insensitive exact match of `identifier` against MAC, local name, name and system id."""
    if not identifier or not isinstance(identifier, str):
        return False
    wanted = identifier.lower()
    candidates = (
        parse_mac(device.advertisement),
        device.local_name,
        device.name,
        device.system_id,
    )
    return any(candidate and candidate.lower() == wanted for candidate in candidates)


def normalize_identifiers(identifiers: Any) -> List[str]:
    """
    Turn a single identifier or an iterable of identifiers into an ordered, de-duplicated list.

    Raises:
        InvalidIdentifier: If `identifiers` is neither a str nor an iterable of non-empty str.
    """
    if isinstance(identifiers, str):
        identifiers = [identifiers]
    elif not isinstance(identifiers, Iterable) or isinstance(
        identifiers, (bytes, bytearray, memoryview)
    ):
        raise InvalidIdentifier(f"Invalid device identifier: {identifiers!r}")
    wanted: List[str] = []
    for identifier in identifiers:
        if not isinstance(identifier, str) or not identifier:
            raise InvalidIdentifier(f"Invalid device identifier: {identifier!r}")
        if identifier not in wanted:
            wanted.append(identifier)
    return wanted


def format_device(device: AdvertisedDevice) -> Dict[str, str]:
    """Flatten a discovery result into a printable row."""
    return {
        "System ID": device.system_id,
        "Name": device.name or "",
        "Local name": device.local_name or "",
        "MAC": parse_mac(device.advertisement),
    }


@dataclass(eq=False)
class _ScanSession:
    outstanding: List[str]
    future: "asyncio.Future[List[MatchedDevice]]"
    matched: List[MatchedDevice] = field(default_factory=list)

    def finish(self) -> None:
        if not self.future.done():
            self.future.set_result(list(self.matched))

    def abort(self, error: Exception) -> None:
        if not self.future.done():
            self.future.set_exception(error)


class Scanner:
    """Scan-with-timeout for sets of wanted identifiers.

    Concurrent scans share one gateway discovery: every advertised device is offered
    to each active session, and each session consumes its own wanted set. There is a
    single scan timer; starting a scan re-arms it, and when it fires every session
    still waiting fails with ScanTimeout. Discovery stops when the last session ends.
    """

    def __init__(self, gateway: RadioGateway):
        self.gateway = gateway
        self._sessions: List[_ScanSession] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._discovering = False

    @property
    def scanning(self) -> bool:
        return bool(self._sessions)

    async def scan(
        self,
        identifiers: Any,
        timeout: float = BLEConfig.SCAN_TIMEOUT,
        service_uuids: Optional[Sequence[str]] = None,
    ) -> List[MatchedDevice]:
        """
        Scan until every wanted identifier has been seen once, or the scan timer fires.

        Parameters:
            identifiers: A single identifier or an iterable of identifiers.
            timeout (float): Seconds until the scan timer fires. Re-arms the timer
                shared with scans already in progress.
            service_uuids: Optional advertised-service filter, used when this call
                is the one that starts gateway discovery.

        Returns:
            List[MatchedDevice]: One entry per identifier, in the order they were seen.

        Raises:
            InvalidIdentifier: If `identifiers` is malformed.
            ScanTimeout: If some identifier was still outstanding when the timer fired.
        """
        wanted = normalize_identifiers(identifiers)
        if not wanted:
            return []

        loop = asyncio.get_running_loop()
        session = _ScanSession(outstanding=list(wanted), future=loop.create_future())
        self._sessions.append(session)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(timeout, self._on_timeout, timeout)

        logger.debug("Scanning for %s (timeout %.1fs)", wanted, timeout)
        try:
            if not self._discovering:
                await self._start_discovery(service_uuids)
            return await session.future
        finally:
            self._sessions.remove(session)
            if not self._sessions:
                await self._end_discovery()

    async def _start_discovery(self, service_uuids: Optional[Sequence[str]]) -> None:
        self._discovering = True
        try:
            await self.gateway.start_discovery(self._on_device_found, service_uuids)
        except Exception as e:  # noqa: BLE001 - the scan timer still ends every session
            self._discovering = False
            logger.warning("Failed to start discovery: %s", e)

    async def _end_discovery(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._discovering:
            self._discovering = False
            await BLEErrorHandler.safe_cleanup(self.gateway.stop_discovery, "stop discovery")

    def _on_device_found(self, device: AdvertisedDevice) -> None:
        for session in list(self._sessions):
            self._offer(session, device)

    @staticmethod
    def _offer(session: _ScanSession, device: AdvertisedDevice) -> None:
        if session.future.done():
            return
        for identifier in session.outstanding:
            if match_device(device, identifier):
                session.outstanding.remove(identifier)
                session.matched.append(
                    MatchedDevice(
                        identifier=identifier,
                        mac=parse_mac(device.advertisement),
                        device=device,
                    )
                )
                logger.debug("Found %s as %s", identifier, device.system_id)
                break
        if not session.outstanding:
            session.finish()

    def _on_timeout(self, timeout: float) -> None:
        self._timer = None
        for session in list(self._sessions):
            if session.future.done():
                continue
            logger.debug("Scan timed out with %s outstanding", session.outstanding)
            session.abort(ScanTimeout(ERROR_SCAN_TIMEOUT.format(session.outstanding, timeout)))

    async def find_known_device(self, identifier: str) -> Optional[MatchedDevice]:
        """Look `identifier` up among devices the gateway has already discovered."""
        devices = await self.gateway.get_discovered_devices()
        for device in devices:
            if match_device(device, identifier):
                return MatchedDevice(
                    identifier=identifier,
                    mac=parse_mac(device.advertisement),
                    device=device,
                )
        return None

    async def collect(
        self,
        timeout: float = BLEConfig.SCAN_TIMEOUT,
        service_uuids: Optional[Sequence[str]] = None,
    ) -> List[AdvertisedDevice]:
        """Run discovery for `timeout` seconds and return every distinct device seen."""
        seen: Dict[str, AdvertisedDevice] = {}

        def on_device_found(device: AdvertisedDevice) -> None:
            seen[device.system_id] = device

        await self.gateway.start_discovery(on_device_found, service_uuids)
        try:
            await asyncio.sleep(timeout)
        finally:
            await BLEErrorHandler.safe_cleanup(
                self.gateway.stop_discovery, "stop discovery"
            )
        return list(seen.values())


__all__ = [
    "MatchedDevice",
    "Scanner",
    "format_device",
    "match_device",
    "normalize_identifiers",
    "parse_mac",
]
