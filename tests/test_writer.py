"""Tests for the write path: link-vanished retry and chunked writes."""

import asyncio

import pytest

from blelink.connection import ConnectionOrchestrator
from blelink.exceptions import (
    ConnectFailed,
    DeviceNotFound,
    GatewayError,
    LinkVanished,
    OperationTimeout,
    WriteFailed,
)
from blelink.writer import WritePath

from tests.fakes import DATA_SERVICE, DEVICE_ID, WRITE_CHAR


@pytest.fixture
def orchestrator(gateway, registry) -> ConnectionOrchestrator:
    return ConnectionOrchestrator(gateway, registry)


@pytest.fixture
def writer(orchestrator, registry) -> WritePath:
    return WritePath(orchestrator, registry)


def connect_and(orchestrator, action):
    async def run():
        record = await orchestrator.connect("Thermo-01")
        return await action(record)

    return asyncio.run(run())


class TestWriteOnce:
    """Test cases for WritePath.write_once."""

    def test_writes_to_cached_handles(self, gateway, orchestrator, writer):
        connect_and(orchestrator, lambda record: writer.write_once(record, b"\x01\x02"))
        assert gateway.writes == [(DEVICE_ID, DATA_SERVICE, WRITE_CHAR, b"\x01\x02")]

    def test_vanished_link_code(self, gateway, orchestrator, writer):
        gateway.write_errors = [GatewayError(10004)]
        with pytest.raises(LinkVanished):
            connect_and(orchestrator, lambda record: writer.write_once(record, b"\x01"))

    def test_other_fault_keeps_gateway_code(self, gateway, orchestrator, writer):
        gateway.write_errors = [GatewayError(10007)]
        with pytest.raises(WriteFailed) as excinfo:
            connect_and(orchestrator, lambda record: writer.write_once(record, b"\x01"))
        assert excinfo.value.code == 10007

    def test_guard_timer(self, gateway, orchestrator, registry):
        gateway.write_delay = 1.0
        writer = WritePath(orchestrator, registry, io_timeout=0.02)
        with pytest.raises(OperationTimeout):
            connect_and(orchestrator, lambda record: writer.write_once(record, b"\x01"))


class TestWriteWithRetry:
    """Test cases for WritePath.write_with_retry."""

    def test_recovers_once_after_link_vanished(self, gateway, registry, orchestrator, writer):
        gateway.write_errors = [GatewayError(10004), None]
        connect_and(orchestrator, lambda record: writer.write_with_retry(record, b"\xaa"))

        assert [write[3] for write in gateway.writes] == [b"\xaa", b"\xaa"]
        assert gateway.count("disconnect") == 1
        # the reconnect rescans instead of reusing the cached device
        assert gateway.count("start_discovery") == 2
        assert gateway.count("get_services") == 2
        assert registry.lookup("Thermo-01") is not None

    def test_second_failure_propagates(self, gateway, orchestrator, writer):
        gateway.write_errors = [GatewayError(10004), GatewayError(10004)]
        with pytest.raises(LinkVanished):
            connect_and(orchestrator, lambda record: writer.write_with_retry(record, b"\xaa"))
        assert len(gateway.writes) == 2

    def test_second_failure_of_other_kind_propagates(self, gateway, orchestrator, writer):
        gateway.write_errors = [GatewayError(10004), GatewayError(10008)]
        with pytest.raises(WriteFailed) as excinfo:
            connect_and(orchestrator, lambda record: writer.write_with_retry(record, b"\xaa"))
        assert excinfo.value.code == 10008

    def test_other_faults_are_not_retried(self, gateway, orchestrator, writer):
        gateway.write_errors = [GatewayError(10008)]
        with pytest.raises(WriteFailed):
            connect_and(orchestrator, lambda record: writer.write_with_retry(record, b"\xaa"))
        assert len(gateway.writes) == 1
        assert gateway.count("disconnect") == 0

    def test_recovery_failure_propagates(self, gateway, orchestrator, writer):
        gateway.write_errors = [GatewayError(10004)]

        async def vanish_then_break(record):
            gateway.connect_error = GatewayError(10003)
            await writer.write_with_retry(record, b"\xaa")

        with pytest.raises(ConnectFailed):
            connect_and(orchestrator, vanish_then_break)
        assert len(gateway.writes) == 1


class TestLoopWrite:
    """Test cases for WritePath.loop_write."""

    def test_chunks_in_order(self, gateway, orchestrator, writer):
        payload = bytes(range(45))
        written = connect_and(orchestrator, lambda record: writer.loop_write(record, payload))
        assert written == 3
        assert [len(write[3]) for write in gateway.writes] == [20, 20, 5]
        assert b"".join(write[3] for write in gateway.writes) == payload

    def test_exact_multiple_has_no_empty_tail(self, gateway, orchestrator, writer):
        connect_and(orchestrator, lambda record: writer.loop_write(record, bytes(40)))
        assert [len(write[3]) for write in gateway.writes] == [20, 20]

    def test_failing_chunk_aborts_the_rest(self, gateway, orchestrator, writer):
        gateway.write_errors = [None, GatewayError(10008)]
        with pytest.raises(WriteFailed):
            connect_and(orchestrator, lambda record: writer.loop_write(record, bytes(45)))
        assert len(gateway.writes) == 2

    def test_empty_payload_writes_nothing(self, gateway, orchestrator, writer):
        written = connect_and(orchestrator, lambda record: writer.loop_write(record, b""))
        assert written == 0
        assert gateway.writes == []

    def test_later_chunks_use_fresh_record(self, gateway, registry, orchestrator, writer):
        gateway.write_errors = [GatewayError(10004), None, None]
        connect_and(orchestrator, lambda record: writer.loop_write(record, bytes(30)))
        assert [len(write[3]) for write in gateway.writes] == [20, 20, 10]
        assert gateway.count("start_discovery") == 2

    def test_missing_record_aborts(self, gateway, registry, orchestrator, writer):
        async def drop_then_write(record):
            registry.remove("Thermo-01")
            return await writer.loop_write(record, bytes(30))

        with pytest.raises(DeviceNotFound):
            connect_and(orchestrator, drop_then_write)
        assert len(gateway.writes) == 1

    def test_rejects_non_positive_chunk_size(self, orchestrator, writer):
        with pytest.raises(ValueError):
            connect_and(orchestrator, lambda record: writer.loop_write(record, b"\x01", chunk_size=0))
