"""Containment helpers for callback and cleanup failures."""

import asyncio

from bleak.exc import BleakError

from blelink.constants import logger
from blelink.exceptions import BLEError

__all__ = ["BLEErrorHandler"]

# Radio faults that are routine during teardown or callback dispatch
EXPECTED_ERRORS = (BleakError, BLEError, asyncio.TimeoutError)


class BLEErrorHandler:
    """Static helpers that keep caller-supplied callbacks and best-effort cleanup
    from breaking the connect/write control flow.

    Radio faults (``BleakError``, ``BLEError``, timeouts) are logged at debug level;
    anything else gets a traceback via ``logger.exception``.
    """

    @staticmethod
    def safe_execute(func, error_msg: str = "Error in callback", default=None):
        """
        Call `func()` and return its result, or `default` if it raised.

        Parameters:
            func (callable): Zero-argument callable, typically a user callback.
            error_msg (str): Prefix for the log line written on failure.
            default: Returned in place of the result when `func` raises.
        """
        try:
            return func()
        except EXPECTED_ERRORS as e:
            logger.debug("%s: %s", error_msg, e)
        except Exception:  # noqa: BLE001 - user callbacks must not break dispatch
            logger.exception("%s", error_msg)
        return default

    @staticmethod
    async def safe_cleanup(coro_func, cleanup_name: str = "cleanup"):
        """Await `coro_func()` for best-effort teardown; any failure is logged at debug and dropped."""
        try:
            await coro_func()
        except Exception as e:  # noqa: BLE001 - teardown keeps going past a failed step
            logger.debug("Error during %s: %s", cleanup_name, e)
