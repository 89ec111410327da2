from dataclasses import dataclass
from typing import List, Tuple

import cv2
import numpy as np

BACKENDS = ("opencv", "opencv_aruco", "pyzbar", "zxingcpp")


@dataclass
class QRCodeDetection:
    text: str
    points: List[Tuple[float, float]]
    center: Tuple[float, float]
    area: float


def _polygon_area(points: np.ndarray) -> float:
    if points.shape[0] < 3:
        return 0.0
    return float(cv2.contourArea(points.astype("float32")))


def _make_detection(text: str, quad_points: List[Tuple[float, float]]) -> QRCodeDetection:
    center_x = sum(p[0] for p in quad_points) / len(quad_points)
    center_y = sum(p[1] for p in quad_points) / len(quad_points)
    return QRCodeDetection(
        text=text,
        points=quad_points,
        center=(center_x, center_y),
        area=_polygon_area(np.array(quad_points)),
    )


class QRDetector:
    """
    Extracts QR payload strings from camera frames.

    Detections come back largest first, so when several codes share the
    frame the one held closest to the camera is ingested first.
    """

    def __init__(self, backend: str = "opencv"):
        if backend not in BACKENDS:
            raise ValueError(
                f"Unknown QR backend {backend!r} (expected one of: {', '.join(BACKENDS)})"
            )
        self.backend = backend
        self._opencv = None
        self._pyzbar = None
        self._zxingcpp = None

        if backend == "pyzbar":
            try:
                from pyzbar import pyzbar  # type: ignore
            except ImportError as exc:
                raise RuntimeError(
                    "pyzbar is not installed; pip install 'urscanner[pyzbar]' or use backend=opencv"
                ) from exc
            self._pyzbar = pyzbar
        elif backend == "zxingcpp":
            try:
                import zxingcpp  # type: ignore
            except ImportError as exc:
                raise RuntimeError(
                    "zxing-cpp is not installed; pip install 'urscanner[zxing]'"
                ) from exc
            self._zxingcpp = zxingcpp
        elif backend == "opencv_aruco":
            self._opencv = cv2.QRCodeDetectorAruco()
        else:
            self._opencv = cv2.QRCodeDetector()

    def detect(self, frame) -> List[QRCodeDetection]:
        if self.backend == "pyzbar":
            detections = _detect_pyzbar(frame, self._pyzbar)
        elif self.backend == "zxingcpp":
            detections = _detect_zxingcpp(frame, self._zxingcpp)
        else:
            detections = _detect_opencv(frame, self._opencv)
        detections.sort(key=lambda d: d.area, reverse=True)
        return detections


def _detect_opencv(frame, detector) -> List[QRCodeDetection]:
    detections: List[QRCodeDetection] = []
    try:
        ok, decoded_info, points, _ = detector.detectAndDecodeMulti(frame)
    except cv2.error:
        return detections
    if not ok or points is None:
        return detections
    for text, quad in zip(decoded_info, points):
        # detectAndDecodeMulti reports located-but-unreadable codes as ""
        if text:
            detections.append(
                _make_detection(text, [(float(x), float(y)) for x, y in quad])
            )
    return detections


def _detect_pyzbar(frame, pyzbar) -> List[QRCodeDetection]:
    detections: List[QRCodeDetection] = []
    gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    for obj in pyzbar.decode(gray):
        text = obj.data.decode("utf-8", errors="replace")
        if not text:
            continue
        if obj.polygon:
            quad_points = [(float(p.x), float(p.y)) for p in obj.polygon]
        else:
            rect = obj.rect
            quad_points = [
                (float(rect.left), float(rect.top)),
                (float(rect.left + rect.width), float(rect.top)),
                (float(rect.left + rect.width), float(rect.top + rect.height)),
                (float(rect.left), float(rect.top + rect.height)),
            ]
        detections.append(_make_detection(text, quad_points))
    return detections


def _detect_zxingcpp(frame, zxingcpp) -> List[QRCodeDetection]:
    detections: List[QRCodeDetection] = []
    for result in zxingcpp.read_barcodes(frame):
        if not result.text:
            continue
        pos = result.position
        quad_points = [
            (float(pos.top_left.x), float(pos.top_left.y)),
            (float(pos.top_right.x), float(pos.top_right.y)),
            (float(pos.bottom_right.x), float(pos.bottom_right.y)),
            (float(pos.bottom_left.x), float(pos.bottom_left.y)),
        ]
        detections.append(_make_detection(text=result.text, quad_points=quad_points))
    return detections
