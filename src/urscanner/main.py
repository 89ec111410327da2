"""
urscanner - read an animated (multi-part) QR code from a camera.

Architecture:
    Camera provider → Scan controller → Decode session → callbacks
    (threads)          (lifecycle)       (state machine)

The preview window doubles as the host UI: pausing it stops the camera,
closing it tears the scan down.
"""

import argparse
import logging
import threading
import time
from pathlib import Path
from typing import Optional

from .camera import CameraCaptureProvider
from .capture import ReplayCaptureProvider
from .config import load_config
from .controller import ScanController, Visibility
from .decoder import DecodedPayload, SupportedType
from .preview import PreviewAction, ScanPreview
from .qr_detector import QRDetector
from .registry import CryptoHDKey

log = logging.getLogger("urscanner")


class _Outcome:
    """Collects callback results across the delivery thread and the main thread."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.payload: Optional[DecodedPayload] = None
        self.last_failure: Optional[str] = None
        self.failures = 0

    def on_success(self, payload: DecodedPayload) -> None:
        self.payload = payload
        self.done.set()

    def on_failure(self, message: str) -> None:
        self.failures += 1
        self.last_failure = message
        log.warning(message)


def _resolve_config_path(arg: Optional[str]) -> Optional[str]:
    if arg:
        return arg
    default = Path("config.toml")
    return str(default) if default.exists() else None


def _run_preview(controller, provider, outcome: _Outcome, deadline: Optional[float]) -> None:
    preview = ScanPreview()
    paused = False
    try:
        while not outcome.done.is_set():
            if deadline is not None and time.monotonic() > deadline:
                log.info("Timed out waiting for a complete payload")
                return
            frame, detections = provider.snapshot()
            action = preview.render(
                frame,
                [] if paused else detections,
                controller.session.progress,
                "PAUSED" if paused else "SCANNING",
                outcome.last_failure,
            )
            if action is PreviewAction.QUIT:
                return
            if action is PreviewAction.TOGGLE_PAUSE:
                paused = not paused
                controller.on_visibility_change(
                    Visibility.INACTIVE if paused else Visibility.RESUMED
                )
    finally:
        preview.close()


def _wait(outcome: _Outcome, deadline: Optional[float]) -> None:
    while not outcome.done.is_set():
        if deadline is not None and time.monotonic() > deadline:
            log.info("Timed out waiting for a complete payload")
            return
        outcome.done.wait(0.1)


def main(argv=None) -> int:
    """Main application entry point."""
    parser = argparse.ArgumentParser(description="Scan an animated UR QR code")
    parser.add_argument("--config", help="Path to config TOML (default: ./config.toml if present)")
    parser.add_argument(
        "--target",
        choices=[t.value for t in SupportedType],
        help="Expected payload type (default: config scan.target)",
    )
    parser.add_argument("--replay", help="Read frames from a text file instead of the camera")
    parser.add_argument("--output", help="Write the decoded bytes to this file")
    parser.add_argument("--timeout", type=float, help="Give up after N seconds (0 = never)")
    parser.add_argument("--no-gui", action="store_true", help="Disable preview window")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(_resolve_config_path(args.config))
    cam_cfg = config["camera"]
    qr_cfg = config["qr"]
    scan_cfg = config["scan"]
    ui_cfg = config["ui"]

    target = SupportedType.parse(args.target or scan_cfg["target"])
    timeout = args.timeout if args.timeout is not None else scan_cfg["timeout_seconds"]
    deadline = time.monotonic() + timeout if timeout else None

    if args.replay:
        provider = ReplayCaptureProvider.from_file(args.replay)
    else:
        provider = CameraCaptureProvider(
            cam_cfg["index"],
            cam_cfg["preferred_width"],
            cam_cfg["preferred_height"],
            mirror=cam_cfg["mirror"],
            detector=QRDetector(backend=qr_cfg["backend"]),
            dedupe=qr_cfg["dedupe"],
        )

    outcome = _Outcome()
    controller = ScanController(provider, target, outcome.on_success, outcome.on_failure)
    show_gui = ui_cfg["show_preview"] and not args.no_gui and not args.replay

    try:
        with controller:
            if args.replay:
                provider.play()
            elif show_gui:
                _run_preview(controller, provider, outcome, deadline)
            else:
                _wait(outcome, deadline)
    except KeyboardInterrupt:
        log.info("Interrupted")

    payload = outcome.payload
    if payload is None:
        print(f"No complete {target.value} payload decoded ({outcome.failures} failed reads).")
        return 1

    if args.output:
        Path(args.output).write_bytes(payload.data)
        print(f"Wrote {len(payload.data)} bytes of {payload.type.value} to {args.output}")
    else:
        print(f"{payload.type.value} ({payload.parts} parts): {payload.hex()}")
    if isinstance(payload.value, CryptoHDKey):
        print(f"bip32: {payload.value.get_bip32_key()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
