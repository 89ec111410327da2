"""
Scan controller: binds a decode session to a live capture stream.

The capture device is only kept running while the host UI is in the
interactive foreground:

    ACTIVE   --INACTIVE-->  INACTIVE   unsubscribe, stop device
    INACTIVE --RESUMED--->  ACTIVE     resubscribe, start device

Every other visibility change is ignored. dispose() is terminal.
"""

import logging
import threading
from enum import Enum
from typing import List, Optional

from .capture import CaptureProvider, Subscription
from .decoder import MultipartDecoder, SupportedType
from .session import DecodeSession, DecoderFactory, FailureCallback, SuccessCallback

log = logging.getLogger(__name__)


class Visibility(Enum):
    """Host application lifecycle states, as delivered by the host."""

    RESUMED = "resumed"
    INACTIVE = "inactive"
    HIDDEN = "hidden"
    PAUSED = "paused"
    DETACHED = "detached"


class CaptureState(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ScanController:
    def __init__(
        self,
        provider: CaptureProvider,
        target: SupportedType,
        on_success: SuccessCallback,
        on_failure: FailureCallback,
        *,
        decoder_factory: DecoderFactory = MultipartDecoder,
    ):
        self._provider = provider
        self._session = DecodeSession(
            target, on_success, on_failure, decoder_factory=decoder_factory
        )
        # Re-entrant: a success callback may dispose the controller from
        # inside _handle_frame.
        self._lock = threading.RLock()
        self._subscription: Optional[Subscription] = None
        self._state = CaptureState.INACTIVE
        self._attached = False
        self._disposed = False

    @property
    def session(self) -> DecodeSession:
        return self._session

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __enter__(self) -> "ScanController":
        self.attach()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def attach(self) -> None:
        with self._lock:
            if self._disposed:
                raise RuntimeError("Cannot attach a disposed scan controller")
            if self._attached:
                raise RuntimeError("Scan controller is already attached")
            self._activate()
            self._attached = True

    def on_visibility_change(self, visibility: Visibility) -> None:
        stale: Optional[Subscription] = None
        with self._lock:
            if self._disposed or not self._attached:
                return
            if visibility is Visibility.RESUMED:
                if self._state is CaptureState.INACTIVE:
                    self._activate()
                return
            if visibility is not Visibility.INACTIVE:
                return
            if self._state is not CaptureState.ACTIVE:
                return
            stale, self._subscription = self._subscription, None
            self._state = CaptureState.INACTIVE
        log.info("Host inactive; stopping capture")
        if stale is not None:
            stale.cancel()
        self._provider.stop()

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            stale, self._subscription = self._subscription, None
            self._state = CaptureState.INACTIVE
            self._session.reset()
        # Stopped outside this method's lock section so the provider can join
        # its delivery thread. When dispose() runs inside a frame callback the
        # RLock is still held by that thread and the provider skips the join.
        if stale is not None:
            stale.cancel()
        self._provider.stop()
        log.info("Scan controller disposed")

    def _activate(self) -> None:
        subscription = self._provider.subscribe(self._handle_frame)
        self._subscription = subscription
        self._state = CaptureState.ACTIVE
        log.info("Starting capture for %s", self._session.target.value)
        try:
            self._provider.start()
        except Exception:
            subscription.cancel()
            self._subscription = None
            self._state = CaptureState.INACTIVE
            raise

    def _handle_frame(self, codes: List[str]) -> None:
        with self._lock:
            for code in codes:
                if self._disposed or self._state is not CaptureState.ACTIVE:
                    return
                self._session.ingest(code)
