"""Routing of gateway events into the registry, record callbacks and pubsub."""

from pubsub import pub

from blelink.constants import logger
from blelink.errors import BLEErrorHandler
from blelink.registry import DeviceRegistry

TOPIC_ADAPTER_UNAVAILABLE = "blelink.adapter.unavailable"
TOPIC_CONNECTION_LOST = "blelink.connection.lost"
TOPIC_CONNECTION_ESTABLISHED = "blelink.connection.established"
TOPIC_NOTIFY = "blelink.notify"


def publish(topic: str, **kwargs) -> None:
    """Send a pubsub message; listener failures are logged, never propagated."""
    BLEErrorHandler.safe_execute(
        lambda: pub.sendMessage(topic, **kwargs),
        error_msg=f"Error publishing {topic}",
    )


class GatewayEventRouter:
    """GatewayListener that keeps the registry in step with the radio.

    Installed once on the gateway by the orchestrator. Record callbacks run
    synchronously inside the gateway's callback and must not block.
    """

    def __init__(self, registry: DeviceRegistry):
        self.registry = registry

    def on_adapter_state_change(self, available: bool) -> None:
        if available:
            logger.debug("Bluetooth adapter available")
            return
        logger.info("Bluetooth adapter unavailable, dropping %d record(s)", len(self.registry))
        self.registry.clear()
        publish(TOPIC_ADAPTER_UNAVAILABLE)

    def on_connection_state_change(self, system_id: str, connected: bool) -> None:
        """Drop the record for a lost link, running its on_close before removal."""
        if connected:
            return
        identifier = self.registry.reverse_lookup_by_system_id(system_id)
        if identifier is None:
            logger.debug("Disconnect from untracked device %s", system_id)
            return
        record = self.registry.lookup(identifier)
        logger.info("Connection to %s (%s) lost", identifier, system_id)
        if record is not None and record.on_close is not None:
            BLEErrorHandler.safe_execute(
                record.on_close, error_msg=f"Error in on_close for {identifier}"
            )
        self.registry.remove(identifier)
        publish(TOPIC_CONNECTION_LOST, identifier=identifier, system_id=system_id)

    def on_characteristic_value_change(
        self, system_id: str, characteristic_uuid: str, data: bytes
    ) -> None:
        identifier = self.registry.reverse_lookup_by_system_id(system_id)
        if identifier is None:
            logger.debug(
                "Notification from untracked device %s on %s", system_id, characteristic_uuid
            )
            return
        record = self.registry.lookup(identifier)
        payload = bytes(data)
        if record is not None and record.on_notify is not None:
            BLEErrorHandler.safe_execute(
                lambda: record.on_notify(payload),
                error_msg=f"Error in on_notify for {identifier}",
            )
        publish(TOPIC_NOTIFY, identifier=identifier, data=payload)


__all__ = [
    "GatewayEventRouter",
    "TOPIC_ADAPTER_UNAVAILABLE",
    "TOPIC_CONNECTION_ESTABLISHED",
    "TOPIC_CONNECTION_LOST",
    "TOPIC_NOTIFY",
    "publish",
]
