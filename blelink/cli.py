"""Command-line front end: scan for peripherals and write payloads."""

import argparse
import asyncio
import importlib.metadata
import logging
import sys
from typing import List, Optional

from tabulate import tabulate

from blelink.codec import ENCODING_HEX, ENCODING_STRING, buf2hex
from blelink.connection import DeviceOption
from blelink.constants import BLEConfig, logger
from blelink.discovery import Scanner, format_device
from blelink.exceptions import BLEError
from blelink.gateway import RadioGateway
from blelink.manager import BLEManager


def get_version() -> str:
    try:
        return importlib.metadata.version("blelink")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blelink", description="Connect to BLE peripherals and write to them"
    )
    parser.add_argument("--debug", action="store_true", help="Show debug log output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Scan for advertising peripherals")
    scan.add_argument(
        "identifiers",
        nargs="*",
        help="Identifiers (MAC, name or system id) to wait for; list everything if omitted",
    )
    scan.add_argument(
        "--timeout", type=float, default=BLEConfig.SCAN_TIMEOUT, help="Scan duration in seconds"
    )

    write = subparsers.add_parser("write", help="Connect to a peripheral and write a payload")
    write.add_argument("identifier", help="MAC, name or system id of the peripheral")
    write.add_argument("payload", help="Payload to write")
    write.add_argument(
        "--encoding",
        choices=[ENCODING_HEX, ENCODING_STRING],
        default=ENCODING_HEX,
        help="How PAYLOAD is encoded (default: hex)",
    )
    write.add_argument("--chunked", action="store_true", help="Split the payload into 20-byte writes")
    write.add_argument("--service", default=None, help="Service UUID to restrict discovery to")
    write.add_argument("--write-uuid", default=None, help="Write characteristic UUID")
    write.add_argument("--notify-uuid", default=None, help="Notify characteristic UUID")
    write.add_argument(
        "--listen",
        type=float,
        default=0.0,
        metavar="SECONDS",
        help="Print notifications for this long after writing",
    )
    write.add_argument("--rescan", action="store_true", help="Always scan instead of reusing cached devices")
    write.add_argument(
        "--timeout", type=float, default=BLEConfig.SCAN_TIMEOUT, help="Scan timeout in seconds"
    )
    return parser


async def run_scan(args: argparse.Namespace, gateway: RadioGateway) -> int:
    await gateway.open_adapter()
    scanner = Scanner(gateway)
    try:
        if args.identifiers:
            matches = await scanner.scan(args.identifiers, timeout=args.timeout)
            rows = [{"Identifier": m.identifier, **format_device(m.device)} for m in matches]
        else:
            devices = await scanner.collect(timeout=args.timeout)
            rows = [format_device(device) for device in devices]
    finally:
        await gateway.close_adapter()
    if not rows:
        print("No devices found")
        return 0
    print(tabulate(rows, headers="keys", missingval="N/A", tablefmt="fancy_grid"))
    return 0


async def run_write(args: argparse.Namespace, gateway: RadioGateway) -> int:
    listening = args.listen > 0

    def on_notify(data: bytes) -> None:
        print(f"{args.identifier}: {buf2hex(data)}")

    option = DeviceOption(
        identifier=args.identifier,
        match_services=args.service,
        match_write=args.write_uuid,
        match_notify=args.notify_uuid,
        force_rescan=args.rescan,
        on_notify=on_notify if listening else None,
        on_close=lambda: logger.info("%s disconnected", args.identifier),
        scan_timeout=args.timeout,
    )
    async with BLEManager(gateway) as manager:
        await manager.write(option, args.payload, encoding=args.encoding, chunked=args.chunked)
        print(f"Wrote to {args.identifier}")
        if listening:
            await asyncio.sleep(args.listen)
    return 0


def main(argv: Optional[List[str]] = None, gateway: Optional[RadioGateway] = None) -> int:
    """Entry point for the ``blelink`` console script."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if gateway is None:
        from blelink.bleak_gateway import BleakGateway  # pylint: disable=import-outside-toplevel

        gateway = BleakGateway()

    command = run_scan if args.command == "scan" else run_write
    try:
        return asyncio.run(command(args, gateway))
    except BLEError as e:
        print(f"Error ({e.code}): {e.message}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


__all__ = ["build_parser", "main"]
