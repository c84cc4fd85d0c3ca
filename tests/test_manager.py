"""Tests for BLEManager and DeviceHandle."""

import asyncio
from unittest.mock import Mock

import pytest

from blelink.connection import DeviceOption
from blelink.exceptions import DeviceNotFound, ScanTimeout
from blelink.manager import BLEManager, DeviceHandle

from tests.fakes import DATA_SERVICE, DEVICE_ID, NOTIFY_CHAR, WRITE_CHAR


@pytest.fixture
def manager(gateway) -> BLEManager:
    return BLEManager(gateway)


class TestBLEManager:
    """Test cases for BLEManager."""

    def test_hex_write(self, gateway, manager):
        asyncio.run(manager.write("Thermo-01", "a0 ff", encoding="hex"))
        assert gateway.writes == [(DEVICE_ID, DATA_SERVICE, WRITE_CHAR, b"\xa0\xff")]
        assert manager.is_connected("Thermo-01")

    def test_string_write(self, gateway, manager):
        asyncio.run(manager.write("Thermo-01", "hi", encoding="string"))
        assert gateway.writes[0][3] == b"hi"

    def test_chunked_write(self, gateway, manager):
        asyncio.run(manager.write("Thermo-01", bytes(50), chunked=True))
        assert [len(write[3]) for write in gateway.writes] == [20, 20, 10]

    def test_bad_encoding_fails_before_connecting(self, gateway, manager):
        with pytest.raises(ValueError):
            asyncio.run(manager.write("Thermo-01", "zz", encoding="hex"))
        assert gateway.count("connect") == 0

    def test_enqueue_write_serializes(self, gateway, manager):
        async def run():
            await asyncio.gather(
                manager.enqueue_write("Thermo-01", b"\x01", post_delay=0),
                manager.enqueue_write("Thermo-01", b"\x02", post_delay=0),
                manager.enqueue_write("Thermo-01", "03", encoding="hex", post_delay=0),
            )

        asyncio.run(run())
        assert [write[3] for write in gateway.writes] == [b"\x01", b"\x02", b"\x03"]
        assert gateway.count("connect") == 1

    def test_enqueue_write_propagates_failure(self, gateway, manager):
        gateway.devices = []
        option = DeviceOption("Thermo-01", scan_timeout=0.02)
        with pytest.raises(ScanTimeout):
            asyncio.run(manager.enqueue_write(option, b"\x01", post_delay=0))
        assert gateway.writes == []

    def test_default_characteristic_policy(self, gateway):
        manager = BLEManager(gateway, characteristic_policy=NOTIFY_CHAR)
        asyncio.run(manager.write("Thermo-01", b"\x01"))
        assert gateway.writes[0][2] == NOTIFY_CHAR

    def test_option_overrides_default_policy(self, gateway):
        manager = BLEManager(gateway, characteristic_policy=NOTIFY_CHAR)
        asyncio.run(manager.write(DeviceOption("Thermo-01", match_write=WRITE_CHAR), b"\x01"))
        assert gateway.writes[0][2] == WRITE_CHAR

    def test_close(self, gateway, manager):
        async def run():
            await manager.connect("Thermo-01")
            await manager.close("Thermo-01")

        asyncio.run(run())
        assert not manager.is_connected("Thermo-01")
        assert gateway.count("disconnect") == 1

    def test_close_unknown_device(self, manager):
        with pytest.raises(DeviceNotFound):
            asyncio.run(manager.close("Thermo-01"))

    def test_verify_connected_asks_the_gateway(self, gateway, manager):
        async def run():
            await manager.connect("Thermo-01")
            before = await manager.verify_connected("Thermo-01")
            gateway.connected.clear()
            after = await manager.verify_connected("Thermo-01")
            return before, after

        assert asyncio.run(run()) == (True, False)
        # the registry still holds the record; only the radio knows the link is gone
        assert manager.is_connected("Thermo-01")

    def test_notifications_reach_on_notify(self, gateway, manager):
        received = []
        option = DeviceOption("Thermo-01", on_notify=received.append)

        async def run():
            await manager.connect(option)
            gateway.emit_notify(DEVICE_ID, NOTIFY_CHAR, b"\x10")

        asyncio.run(run())
        assert received == [b"\x10"]

    def test_bare_write_keeps_connect_callbacks(self, gateway, manager):
        on_notify = Mock()
        on_close = Mock()

        async def run():
            await manager.connect(DeviceOption("Thermo-01", on_notify=on_notify, on_close=on_close))
            await manager.write("Thermo-01", b"\x01")

        asyncio.run(run())
        gateway.emit_notify(DEVICE_ID, NOTIFY_CHAR, b"\x10")
        gateway.emit_disconnect(DEVICE_ID)

        assert on_notify.call_count == 1
        assert on_close.call_count == 1
        assert not manager.is_connected("Thermo-01")

    def test_shutdown_on_context_exit(self, gateway):
        async def run():
            async with BLEManager(gateway) as manager:
                await manager.write("Thermo-01", b"\x01")
            return manager

        manager = asyncio.run(run())
        assert len(manager.registry) == 0
        assert gateway.count("disconnect") == 1
        assert gateway.count("close_adapter") == 1

    def test_shutdown_drains_queue_first(self, gateway, manager):
        async def run():
            task = manager.task_queue.push(manager.write, "Thermo-01", b"\x01")
            await manager.shutdown()
            return task

        task = asyncio.run(run())
        assert task.future.done()
        assert gateway.writes[0][3] == b"\x01"
        assert gateway.count("disconnect") == 1


class TestDeviceHandle:
    """Test cases for DeviceHandle."""

    def test_handle_binds_option(self, gateway, manager):
        handle = manager.device("Thermo-01")
        assert isinstance(handle, DeviceHandle)
        assert handle.identifier == "Thermo-01"
        assert repr(handle) == "DeviceHandle('Thermo-01')"

        async def run():
            await handle.write("0102", encoding="hex")
            await handle.enqueue_write(b"\x03", post_delay=0)
            connected = handle.is_connected()
            await handle.close()
            return connected

        assert asyncio.run(run()) is True
        assert [write[3] for write in gateway.writes] == [b"\x01\x02", b"\x03"]
        assert not handle.is_connected()

    def test_handle_connect_returns_record(self, manager):
        record = asyncio.run(manager.device(DeviceOption("Thermo-01")).connect())
        assert record.identifier == "Thermo-01"
        assert record.write_characteristic_uuid == WRITE_CHAR
