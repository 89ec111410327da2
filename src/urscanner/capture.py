"""Capture provider interfaces and an in-memory replay provider."""

import logging
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Protocol, Sequence

log = logging.getLogger(__name__)

FrameCallback = Callable[[List[str]], None]


class Subscription(Protocol):
    def cancel(self) -> None: ...


class CaptureProvider(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def subscribe(self, on_frame: FrameCallback) -> Subscription: ...


class _Handle:
    def __init__(self, owner: "SubscriberList", callback: FrameCallback):
        self._owner = owner
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._owner._remove(self)


class SubscriberList:
    """Thread-safe list of frame callbacks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: List[_Handle] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def subscribe(self, callback: FrameCallback) -> _Handle:
        handle = _Handle(self, callback)
        with self._lock:
            self._handles.append(handle)
        return handle

    def _remove(self, handle: _Handle) -> None:
        with self._lock:
            if handle in self._handles:
                self._handles.remove(handle)

    def publish(self, codes: Sequence[str]) -> None:
        # Callbacks run outside the lock so they may cancel or subscribe.
        with self._lock:
            handles = list(self._handles)
        for handle in handles:
            if not handle.cancelled:
                handle.callback(list(codes))


class ReplayCaptureProvider:
    """
    Capture provider fed from memory instead of a camera.

    Each frame is a list of strings, exactly as a camera frame with several
    recognized codes would be delivered. Frames emitted while the provider is
    stopped are dropped, like frames a stopped camera never captures.
    """

    def __init__(self, frames: Iterable[Sequence[str]] = ()):
        self.frames: List[List[str]] = [list(f) for f in frames]
        self.running = False
        self._subscribers = SubscriberList()

    @classmethod
    def from_file(cls, path: str | Path) -> "ReplayCaptureProvider":
        """Load frames from a text file: one frame per line, codes split on whitespace."""
        frames: List[List[str]] = []
        with Path(path).open("r", encoding="utf-8") as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                frames.append(line.split())
        return cls(frames)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def start(self) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False

    def subscribe(self, on_frame: FrameCallback) -> Subscription:
        return self._subscribers.subscribe(on_frame)

    def emit(self, codes: Sequence[str]) -> bool:
        if not self.running:
            return False
        self._subscribers.publish(codes)
        return True

    def play(self) -> int:
        """Emit all queued frames in order; returns how many were delivered."""
        delivered = 0
        for codes in self.frames:
            if self.emit(codes):
                delivered += 1
        log.debug("Replayed %d of %d frames", delivered, len(self.frames))
        return delivered
