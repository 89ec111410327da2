"""
Decode session: turns a stream of fragment strings into at most one payload.

A live camera regularly produces garbage: half-read codes, an unrelated
barcode drifting through the frame, parts of a different animation. None of
that is fatal. Any decoder error is reported through the failure callback
and the partial state is thrown away, because an incremental decode that
has swallowed a bad fragment cannot be trusted afterwards.

States:
    AWAITING  -> SUCCEEDED   first complete, resolvable payload
    SUCCEEDED -> AWAITING    reset() (also after any decode error)
"""

import logging
from enum import Enum
from typing import Callable, Optional

from .decoder import DecodedPayload, Decoder, MultipartDecoder, SupportedType

log = logging.getLogger(__name__)

SuccessCallback = Callable[[DecodedPayload], None]
FailureCallback = Callable[[str], None]
DecoderFactory = Callable[[SupportedType], Decoder]


class SessionState(Enum):
    AWAITING = "awaiting"
    SUCCEEDED = "succeeded"


class DecodeSession:
    """
    Owns one incremental decoder and enforces the single-fire success rule.

    `on_success` fires at most once between resets, no matter how many
    complete or duplicate fragments arrive after the first resolution.
    `on_failure` may fire any number of times and never ends the session.
    """

    def __init__(
        self,
        target: SupportedType,
        on_success: SuccessCallback,
        on_failure: FailureCallback,
        decoder_factory: DecoderFactory = MultipartDecoder,
    ):
        self.target = target
        self._on_success = on_success
        self._on_failure = on_failure
        self._decoder_factory = decoder_factory
        self._decoder: Decoder = decoder_factory(target)
        self._state = SessionState.AWAITING

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def has_succeeded(self) -> bool:
        return self._state is SessionState.SUCCEEDED

    @property
    def progress(self) -> float:
        return self._decoder.progress()

    def ingest(self, fragment: Optional[str]) -> None:
        if fragment is None:
            return

        try:
            self._decoder.receive(fragment)
            if not self._decoder.is_complete():
                return
            payload = self._decoder.resolve(self.target)
        except Exception as exc:
            # Decoder backends are third-party code; whatever they raise is
            # a misread, not a crash.
            log.debug("Rejected fragment %r: %s", fragment[:48], exc)
            self._on_failure(f"Error when receiving UR: {exc}")
            self.reset()
            return

        if self._state is SessionState.SUCCEEDED:
            return
        self._state = SessionState.SUCCEEDED
        log.info("Resolved %s payload (%d bytes)", payload.type.value, len(payload.data))
        self._on_success(payload)

    def reset(self) -> None:
        self._decoder = self._decoder_factory(self.target)
        self._state = SessionState.AWAITING
