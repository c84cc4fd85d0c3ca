"""Public entry point tying the connection core together."""

from typing import Optional, Union

from blelink.codec import ENCODING_BYTES, Payload, encode_payload
from blelink.connection import ConnectionOrchestrator, DeviceOption
from blelink.constants import BLEConfig, logger
from blelink.discovery import Scanner
from blelink.errors import BLEErrorHandler
from blelink.gateway import RadioGateway
from blelink.gating import ConnectionGate
from blelink.matcher import PolicyLike
from blelink.registry import ConnectionRecord, DeviceRegistry
from blelink.task_queue import TaskQueue
from blelink.writer import WritePath

OptionLike = Union[DeviceOption, str]


class BLEManager:
    """Owns the registry, scanner, orchestrator, write path and task queue for one radio.

    Usable as an async context manager; leaving the block calls `shutdown()`.

    Example:
        async with BLEManager() as ble:
            await ble.write(DeviceOption("Thermo-01", on_notify=print), "a0ff", encoding="hex")
    """

    def __init__(
        self,
        gateway: Optional[RadioGateway] = None,
        *,
        registry: Optional[DeviceRegistry] = None,
        task_queue: Optional[TaskQueue] = None,
        service_policy: PolicyLike = None,
        characteristic_policy: PolicyLike = None,
    ):
        if gateway is None:
            from blelink.bleak_gateway import BleakGateway  # pylint: disable=import-outside-toplevel

            gateway = BleakGateway()
        self.gateway = gateway
        self.registry = registry if registry is not None else DeviceRegistry()
        self.task_queue = task_queue if task_queue is not None else TaskQueue()
        self.scanner = Scanner(gateway)
        self.orchestrator = ConnectionOrchestrator(
            gateway,
            self.registry,
            scanner=self.scanner,
            gate=ConnectionGate(),
            service_policy=service_policy,
            characteristic_policy=characteristic_policy,
        )
        self.writer = WritePath(self.orchestrator, self.registry)

    async def __aenter__(self) -> "BLEManager":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.shutdown()

    async def connect(self, option: OptionLike) -> ConnectionRecord:
        return await self.orchestrator.connect(option)

    async def write(
        self,
        option: OptionLike,
        payload: Payload,
        encoding: str = ENCODING_BYTES,
        chunked: bool = False,
    ) -> None:
        """
        Connect if needed and write `payload` to the device's write characteristic.

        Parameters:
            option: Device to write to, or a bare identifier.
            payload: Bytes-like value, or a str for the "hex" and "string" encodings.
            encoding (str): "bytes", "hex" or "string".
            chunked (bool): Split into BLEConfig.CHUNK_SIZE pieces written in order.
        """
        data = encode_payload(payload, encoding)
        record = await self.orchestrator.connect(option)
        if chunked:
            await self.writer.loop_write(record, data)
        else:
            await self.writer.write_with_retry(record, data)

    async def enqueue_write(
        self,
        option: OptionLike,
        payload: Payload,
        encoding: str = ENCODING_BYTES,
        chunked: bool = False,
        *,
        pre_delay: float = 0.0,
        post_delay: float = BLEConfig.QUEUE_POST_DELAY,
    ) -> None:
        """Route `write()` through the task queue and wait for it to complete."""
        data = encode_payload(payload, encoding)
        task = self.task_queue.push(
            self.write,
            option,
            data,
            ENCODING_BYTES,
            chunked,
            pre_delay=pre_delay,
            post_delay=post_delay,
        )
        await task

    async def close(self, option: OptionLike) -> None:
        await self.orchestrator.disconnect(DeviceOption.coerce(option).identifier)

    def is_connected(self, option: OptionLike) -> bool:
        """Registry check only; use `verify_connected` to ask the radio."""
        return DeviceOption.coerce(option).identifier in self.registry

    async def verify_connected(self, option: OptionLike) -> bool:
        return await self.orchestrator.verify_connected(DeviceOption.coerce(option).identifier)

    def device(self, option: OptionLike) -> "DeviceHandle":
        return DeviceHandle(self, DeviceOption.coerce(option))

    async def shutdown(self) -> None:
        """Drain queued writes, close every link and release the adapter."""
        await self.task_queue.join()
        for record in self.registry.records():
            await BLEErrorHandler.safe_cleanup(
                lambda identifier=record.identifier: self.orchestrator.disconnect(identifier),
                f"close {record.identifier}",
            )
        await BLEErrorHandler.safe_cleanup(self.gateway.close_adapter, "close adapter")
        self.registry.clear()
        logger.debug("BLE manager shut down")


class DeviceHandle:
    """A BLEManager bound to one DeviceOption."""

    def __init__(self, manager: BLEManager, option: DeviceOption):
        self.manager = manager
        self.option = option

    @property
    def identifier(self) -> str:
        return self.option.identifier

    async def connect(self) -> ConnectionRecord:
        return await self.manager.connect(self.option)

    async def write(self, payload: Payload, encoding: str = ENCODING_BYTES, chunked: bool = False) -> None:
        await self.manager.write(self.option, payload, encoding, chunked)

    async def enqueue_write(
        self,
        payload: Payload,
        encoding: str = ENCODING_BYTES,
        chunked: bool = False,
        **delays: float,
    ) -> None:
        await self.manager.enqueue_write(self.option, payload, encoding, chunked, **delays)

    async def close(self) -> None:
        await self.manager.close(self.option)

    def is_connected(self) -> bool:
        return self.manager.is_connected(self.option)

    def __repr__(self) -> str:
        return f"DeviceHandle({self.identifier!r})"


__all__ = ["BLEManager", "DeviceHandle", "OptionLike"]
