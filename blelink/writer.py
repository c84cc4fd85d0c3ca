"""Characteristic writes with link-vanished recovery and chunking."""

import asyncio

from blelink.connection import ConnectionOrchestrator
from blelink.constants import (
    ERR_NO_SERVICE,
    ERROR_NOT_REGISTERED,
    ERROR_TIMEOUT,
    ERROR_WRITING_BLE,
    BLEConfig,
    logger,
)
from blelink.exceptions import DeviceNotFound, GatewayError, LinkVanished, OperationTimeout, WriteFailed
from blelink.registry import ConnectionRecord, DeviceRegistry


class WritePath:
    """Writes payloads to a record's cached write characteristic.

    A write that fails because the cached handles vanished gets exactly one
    close → forced-rescan reconnect → retry cycle. Every other fault surfaces as is.
    """

    def __init__(
        self,
        orchestrator: ConnectionOrchestrator,
        registry: DeviceRegistry,
        io_timeout: float = BLEConfig.GATT_IO_TIMEOUT,
    ):
        self.orchestrator = orchestrator
        self.registry = registry
        self.io_timeout = io_timeout

    async def write_once(self, record: ConnectionRecord, data: bytes) -> None:
        """
        Issue a single gateway write against `record`'s write handles.

        Raises:
            LinkVanished: The gateway reported the service or characteristic missing.
            WriteFailed: Any other gateway fault, carrying the gateway's code.
            OperationTimeout: The gateway did not answer within the I/O timeout.
        """
        gateway = self.orchestrator.gateway
        try:
            await asyncio.wait_for(
                gateway.write(
                    record.system_id,
                    record.write_service_uuid,
                    record.write_characteristic_uuid,
                    bytes(data),
                ),
                self.io_timeout,
            )
        except asyncio.TimeoutError as e:
            raise OperationTimeout(
                ERROR_TIMEOUT.format(f"Write to {record.identifier}", self.io_timeout)
            ) from e
        except GatewayError as e:
            message = ERROR_WRITING_BLE.format(
                record.write_characteristic_uuid, record.identifier, e.message
            )
            if e.code == ERR_NO_SERVICE:
                raise LinkVanished(message) from e
            raise WriteFailed(e.code, message) from e

    async def write_with_retry(self, record: ConnectionRecord, data: bytes) -> None:
        """Write once; on LinkVanished reconnect with a forced rescan and retry exactly once."""
        try:
            await self.write_once(record, data)
        except LinkVanished as e:
            logger.info("Link to %s vanished (%s), reconnecting", record.identifier, e.message)
            fresh = await self.orchestrator.reconnect(record)
            await self.write_once(fresh, data)

    async def loop_write(
        self, record: ConnectionRecord, data: bytes, chunk_size: int = BLEConfig.CHUNK_SIZE
    ) -> int:
        """
        Split `data` into `chunk_size` pieces and write them strictly in order.

        Each chunk is written through `write_with_retry` against the identifier's current
        registry record, so a reconnect during one chunk is picked up by the next.
        The first failing chunk aborts the rest.

        Returns:
            int: Number of chunks written.
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        payload = bytes(data)
        identifier = record.identifier
        written = 0
        for offset in range(0, len(payload), chunk_size):
            current = record if written == 0 else self.registry.lookup(identifier)
            if current is None:
                raise DeviceNotFound(ERROR_NOT_REGISTERED.format(identifier))
            await self.write_with_retry(current, payload[offset : offset + chunk_size])
            written += 1
        logger.debug("Wrote %d byte(s) in %d chunk(s) to %s", len(payload), written, identifier)
        return written


__all__ = ["WritePath"]
