"""Tests for BLEErrorHandler."""

import asyncio
import logging

from bleak.exc import BleakError

from blelink.errors import BLEErrorHandler
from blelink.exceptions import GatewayError


class TestBLEErrorHandler:
    """Test cases for BLEErrorHandler."""

    def test_safe_execute_returns_result(self):
        assert BLEErrorHandler.safe_execute(lambda: 7) == 7

    def test_safe_execute_expected_fault_logs_debug(self, caplog):
        def fail():
            raise GatewayError(10008)

        with caplog.at_level(logging.DEBUG, logger="blelink"):
            result = BLEErrorHandler.safe_execute(fail, error_msg="listener", default="fallback")
        assert result == "fallback"
        assert [record.levelno for record in caplog.records] == [logging.DEBUG]

    def test_safe_execute_unexpected_fault_logs_traceback(self, caplog):
        def fail():
            raise KeyError("boom")

        with caplog.at_level(logging.DEBUG, logger="blelink"):
            assert BLEErrorHandler.safe_execute(fail) is None
        assert caplog.records[-1].levelno == logging.ERROR
        assert caplog.records[-1].exc_info is not None

    def test_safe_cleanup_swallows_failures(self):
        calls = []

        async def fail():
            calls.append("fail")
            raise BleakError("gone")

        async def ok():
            calls.append("ok")

        async def run():
            await BLEErrorHandler.safe_cleanup(fail, "first step")
            await BLEErrorHandler.safe_cleanup(ok, "second step")

        asyncio.run(run())
        assert calls == ["fail", "ok"]
