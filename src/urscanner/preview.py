"""
OpenCV preview window for the scanner CLI.

Shows the live camera feed with overlays:
- QR detection polylines (green)
- Decode progress bar
- Capture status and the last failure message

The window is the host UI of the CLI, so it also produces the visibility
signals for the scan controller:
- 'p' toggles pause (INACTIVE / RESUMED)
- 'q' or closing the window quits
"""

from enum import Enum
from typing import Iterable, Optional

import cv2
import numpy as np

from .qr_detector import QRCodeDetection


class PreviewAction(Enum):
    NONE = "none"
    TOGGLE_PAUSE = "toggle_pause"
    QUIT = "quit"


class ScanPreview:
    def __init__(self, window_name: str = "urscanner"):
        self.neon = (57, 255, 20)
        self.red = (0, 0, 255)
        self.window_name = window_name
        self._blank = np.zeros((360, 640, 3), dtype="uint8")
        cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)

    def render(
        self,
        frame,
        detections: Iterable[QRCodeDetection],
        progress: float,
        status: str,
        last_message: Optional[str] = None,
    ) -> PreviewAction:
        """
        Draw overlays on a copy of `frame` and show it.

        A None frame (camera paused or still warming up) shows a blank canvas
        so the window keeps reacting to keys.
        """
        canvas = self._blank.copy() if frame is None else frame.copy()
        height, width = canvas.shape[:2]

        for det in detections:
            pts = np.array([(int(x), int(y)) for x, y in det.points], dtype="int32")
            cv2.polylines(canvas, [pts], True, self.neon, 4)

        bar_w = int((width - 20) * max(0.0, min(progress, 1.0)))
        cv2.rectangle(canvas, (10, height - 30), (width - 10, height - 10), self.neon, 2)
        if bar_w > 0:
            cv2.rectangle(canvas, (10, height - 30), (10 + bar_w, height - 10), self.neon, -1)

        lines = [f"{status} {progress * 100:.0f}%"]
        if last_message:
            lines.append(last_message[:60])
        y = 30
        for i, line in enumerate(lines):
            color = self.neon if i == 0 else self.red
            cv2.putText(
                canvas, line, (10, y), cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2, cv2.LINE_AA
            )
            y += 32

        try:
            if cv2.getWindowProperty(self.window_name, cv2.WND_PROP_VISIBLE) < 0:
                return PreviewAction.QUIT
            cv2.imshow(self.window_name, canvas)
        except cv2.error:
            return PreviewAction.QUIT
        return self._handle_key()

    def _handle_key(self) -> PreviewAction:
        key = cv2.waitKey(15) & 0xFF
        if key == ord("q"):
            return PreviewAction.QUIT
        if key == ord("p"):
            return PreviewAction.TOGGLE_PAUSE
        return PreviewAction.NONE

    def close(self) -> None:
        try:
            cv2.destroyWindow(self.window_name)
        except cv2.error:
            pass
