"""
Camera-backed capture provider.

Pipeline:
    Capture Thread → Detection Thread → subscribers
         ↓                ↓
    Latest Frame    Latest Detections (for the preview)

Only the detection thread publishes, so subscribers never see two frames
at once.
"""

import logging
import threading
import time
from typing import List, Optional, Sequence, Tuple

import cv2

from .capture import FrameCallback, SubscriberList, Subscription
from .qr_detector import QRCodeDetection, QRDetector

log = logging.getLogger(__name__)


def open_camera(
    index: int, preferred_width: int = 0, preferred_height: int = 0
) -> cv2.VideoCapture:
    """
    Open a camera device configured for low-latency capture.

    Args:
        index: Camera device index (0 for default webcam)
        preferred_width: Desired frame width (0 = driver default)
        preferred_height: Desired frame height (0 = driver default)

    Note:
        Animated QR codes cycle several parts per second, so MJPG (30 FPS on
        USB 2.0 webcams) and a one-frame buffer matter more than resolution.
    """
    cap = cv2.VideoCapture(index)
    if not cap.isOpened():
        raise RuntimeError(f"Failed to open camera index {index}")

    cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*"MJPG"))
    if preferred_width and preferred_height:
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, preferred_width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, preferred_height)
    cap.set(cv2.CAP_PROP_FPS, 30)
    cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
    return cap


class _LatestFrame:
    """Thread-safe storage for latest captured frame with version tracking."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame = None
        self._version = 0

    def update(self, frame) -> None:
        with self._lock:
            self._frame = frame
            self._version += 1

    def snapshot(self):
        with self._lock:
            return self._frame, self._version


class CameraCaptureProvider:
    """
    Capture provider reading QR codes from a local camera.

    start() opens the device and spawns the capture and detection threads;
    stop() joins them and releases the device. Both are idempotent, and the
    provider can be restarted after a stop.
    """

    def __init__(
        self,
        index: int = 0,
        preferred_width: int = 0,
        preferred_height: int = 0,
        *,
        mirror: bool = False,
        detector: Optional[QRDetector] = None,
        dedupe: bool = True,
        opener=open_camera,
    ):
        self.index = index
        self.preferred_width = preferred_width
        self.preferred_height = preferred_height
        self.mirror = mirror
        self.dedupe = dedupe
        self._detector = detector or QRDetector()
        self._opener = opener
        self._subscribers = SubscriberList()

        self._lock = threading.Lock()
        self._cap = None
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self._latest = _LatestFrame()
        self._detections: List[QRCodeDetection] = []
        self._last_published: Optional[Tuple[str, ...]] = None

    @property
    def running(self) -> bool:
        return self._cap is not None

    def subscribe(self, on_frame: FrameCallback) -> Subscription:
        return self._subscribers.subscribe(on_frame)

    def start(self) -> None:
        with self._lock:
            if self._cap is not None:
                return
            self._cap = self._opener(
                self.index, self.preferred_width, self.preferred_height
            )
            self._stop_event = threading.Event()
            # A frame left over from before a stop must not be published.
            self._latest = _LatestFrame()
            self._detections = []
            self._last_published = None
            self._threads = [
                threading.Thread(
                    target=self._capture_loop,
                    args=(self._cap, self._latest, self._stop_event),
                    name="urscanner-capture",
                    daemon=True,
                ),
                threading.Thread(
                    target=self._detection_loop,
                    args=(self._latest, self._stop_event),
                    name="urscanner-detect",
                    daemon=True,
                ),
            ]
            for thread in self._threads:
                thread.start()
        log.info("Camera %d started", self.index)

    def stop(self) -> None:
        with self._lock:
            cap, self._cap = self._cap, None
            threads, self._threads = self._threads, []
            self._stop_event.set()
        if cap is None:
            return
        current = threading.current_thread()
        for thread in threads:
            # stop() may be called from a subscriber on the detection thread
            if thread is not current:
                thread.join(timeout=1.0)
        cap.release()
        log.info("Camera %d stopped", self.index)

    def snapshot(self):
        """Latest frame and the detections found in the most recent detected frame."""
        frame, _ = self._latest.snapshot()
        with self._lock:
            return frame, list(self._detections)

    def _capture_loop(self, cap, latest: _LatestFrame, stop: threading.Event) -> None:
        while not stop.is_set():
            ok, frame = cap.read()
            if not ok:
                time.sleep(0.01)
                continue
            if self.mirror:
                frame = cv2.flip(frame, 1)
            latest.update(frame)

    def _detection_loop(self, latest: _LatestFrame, stop: threading.Event) -> None:
        last_seen = -1
        while not stop.is_set():
            frame, version = latest.snapshot()
            if frame is None or version == last_seen:
                time.sleep(0.005)
                continue
            last_seen = version
            detections = self._detector.detect(frame)
            with self._lock:
                self._detections = detections
            if stop.is_set():
                return
            self.publish([d.text for d in detections])

    def publish(self, codes: Sequence[str]) -> None:
        if not codes:
            return
        key = tuple(codes)
        if self.dedupe and key == self._last_published:
            return
        self._last_published = key
        self._subscribers.publish(codes)
