"""CLI entry point for the receipt scanner."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from .camera import CameraController, FrameNotReady
from .config import load_config
from .models import ExtractionResult
from .remote import LivenessProber
from .scanner import create_scanner
from .state import Failed, ScannerView, Uploading


def main(argv: list[str] | None = None) -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="receipt-scanner",
        description="Scan a receipt from a file or camera and extract its total",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to a TOML config file",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command")

    # cameras
    sub.add_parser("cameras", help="List available cameras")

    # scan
    scan_parser = sub.add_parser("scan", help="Scan a receipt and upload it")
    scan_parser.add_argument(
        "--image", type=str, default=None, help="Use an existing image file"
    )
    scan_parser.add_argument("--json", action="store_true", help="Print JSON output")

    # ping
    sub.add_parser("ping", help="Send one keep-alive request to the service")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    config = load_config(args.config)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    match args.command:
        case "cameras":
            _cmd_cameras()
        case "scan":
            ok = asyncio.run(_cmd_scan(config, args))
            if not ok:
                sys.exit(1)
        case "ping":
            ok = asyncio.run(_cmd_ping(config))
            if not ok:
                sys.exit(1)


def _cmd_cameras() -> None:
    cameras = CameraController.list_cameras()
    if not cameras:
        print("No cameras found.")
        return
    print(f"Available cameras: {len(cameras)}")
    for idx in cameras:
        print(f"  camera {idx}")


def _print_view(view: ScannerView) -> None:
    if view.notice:
        print(view.notice, file=sys.stderr)
    if isinstance(view.acquisition, Uploading):
        print("Extracting data...")


async def _cmd_scan(config, args) -> bool:
    async with create_scanner(config) as scanner:
        scanner.subscribe(_print_view)

        if args.image:
            result = await scanner.select_file(args.image)
        else:
            result = await _scan_from_camera(scanner)

        if result is None:
            state = scanner.state
            if isinstance(state, Failed):
                print(f"Error: {state.reason}", file=sys.stderr)
            return False

    _print_result(result, as_json=args.json)
    return True


async def _scan_from_camera(scanner) -> ExtractionResult | None:
    if not await scanner.open_camera():
        return None

    loop = asyncio.get_running_loop()
    try:
        while True:
            answer = await loop.run_in_executor(
                None, input, "Press Enter to capture (q to cancel): "
            )
            if answer.strip().lower() == "q":
                return None
            try:
                return await scanner.capture()
            except FrameNotReady:
                continue
    finally:
        scanner.close_camera()


def _print_result(result: ExtractionResult, as_json: bool = False) -> None:
    if as_json:
        data = {
            "extractedText": result.extracted_text,
            "totalPrice": result.total_price,
        }
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return
    print("\nExtracted Data:")
    print(f"  Extracted Text: {result.extracted_text}")
    print(f"  Total Price: {result.total_price}")


async def _cmd_ping(config) -> bool:
    prober = LivenessProber(
        health_url=config.service.health_url,
        interval=config.liveness.interval,
        timeout=config.liveness.timeout,
    )
    ok = await prober.ping()
    print(f"{config.service.health_url}: {'ok' if ok else 'unreachable'}")
    return ok
