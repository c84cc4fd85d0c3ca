"""Device registry: per-identifier connection records."""

from dataclasses import dataclass, field
from threading import RLock
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from blelink.gateway import AdvertisedDevice, GattService

if TYPE_CHECKING:
    from blelink.connection import DeviceOption

NotifyCallback = Callable[[bytes], None]
CloseCallback = Callable[[], None]


@dataclass
class ConnectionRecord:
    """Everything known about one live (or recently live) peripheral link.

    The write handles are resolved during connect. The notify handles are filled
    lazily, only when a caller asks for notifications.
    """

    identifier: str
    device: AdvertisedDevice
    write_service_uuid: str
    write_characteristic_uuid: str
    notify_service_uuid: Optional[str] = None
    notify_characteristic_uuid: Optional[str] = None
    notifying: bool = False
    services: List[GattService] = field(default_factory=list)
    option: Optional["DeviceOption"] = None
    on_notify: Optional[NotifyCallback] = None
    on_close: Optional[CloseCallback] = None

    @property
    def system_id(self) -> str:
        return self.device.system_id


class DeviceRegistry:
    """Map of caller identifiers to their ConnectionRecord.

    At most one record exists per identifier. The registry is owned by a single
    BLEManager (or built directly by tests) rather than shared process-wide.
    """

    def __init__(self):
        self._lock = RLock()
        self._records: Dict[str, ConnectionRecord] = {}

    def lookup(self, identifier: str) -> Optional[ConnectionRecord]:
        with self._lock:
            return self._records.get(identifier)

    def upsert(self, identifier: str, record: ConnectionRecord) -> None:
        """Store `record`, replacing any previous record wholesale."""
        with self._lock:
            self._records[identifier] = record

    def remove(self, identifier: str) -> Optional[ConnectionRecord]:
        with self._lock:
            return self._records.pop(identifier, None)

    def reverse_lookup_by_system_id(self, system_id: str) -> Optional[str]:
        """Return the identifier whose record points at `system_id`, or None."""
        with self._lock:
            for identifier, record in self._records.items():
                if record.system_id == system_id:
                    return identifier
        return None

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def records(self) -> List[ConnectionRecord]:
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._records


__all__ = ["CloseCallback", "ConnectionRecord", "DeviceRegistry", "NotifyCallback"]
