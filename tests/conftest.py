"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides a scripted decoder, a counting capture provider and callback
recorders shared by the session and controller tests.

==============================================================================
"""

import re
from typing import Dict, List, Optional

import pytest

from urscanner.decoder import DecodeError, DecodedPayload, SupportedType


# ============================================================================
# DECODER FIXTURES
# ============================================================================

_PART_RE = re.compile(r"^part(\d+)of(\d+):(.*)$")


class PartDecoder:
    """Decoder for the toy grammar `part<N>of<M>:<DATA>`."""

    instances = 0

    def __init__(self, target: Optional[SupportedType] = None):
        PartDecoder.instances += 1
        self.total: Optional[int] = None
        self.parts: Dict[int, str] = {}

    def receive(self, fragment: str) -> None:
        match = _PART_RE.match(fragment)
        if not match:
            raise DecodeError(f"malformed fragment {fragment!r}")
        seq, total, data = int(match.group(1)), int(match.group(2)), match.group(3)
        if self.total is not None and total != self.total:
            raise DecodeError("inconsistent total")
        self.total = total
        self.parts[seq] = data

    def is_complete(self) -> bool:
        return self.total is not None and len(self.parts) == self.total

    def progress(self) -> float:
        return len(self.parts) / self.total if self.total else 0.0

    def resolve(self, target: SupportedType) -> DecodedPayload:
        if not self.is_complete():
            raise DecodeError("incomplete")
        data = "".join(self.parts[i] for i in sorted(self.parts))
        return DecodedPayload(type=target, data=data.encode(), parts=self.total)


class Recorder:
    """Collects success and failure callbacks in call order."""

    def __init__(self) -> None:
        self.successes: List[DecodedPayload] = []
        self.failures: List[str] = []
        self.events: List[str] = []

    def on_success(self, payload: DecodedPayload) -> None:
        self.successes.append(payload)
        self.events.append("success")

    def on_failure(self, message: str) -> None:
        self.failures.append(message)
        self.events.append("failure")


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def expected_payload() -> DecodedPayload:
    """The payload P for the two-part sequence `part1of2:AAA`, `part2of2:BBB`."""
    return DecodedPayload(type=SupportedType.BYTES, data=b"AAABBB", parts=2)


# ============================================================================
# CAPTURE FIXTURES
# ============================================================================

class CountingSubscription:
    def __init__(self, provider: "CountingProvider", callback):
        self.provider = provider
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.provider.cancels += 1
        self.cancelled = True


class CountingProvider:
    """Capture provider that records lifecycle calls and lets tests push frames."""

    def __init__(self) -> None:
        self.starts = 0
        self.stops = 0
        self.cancels = 0
        self.subscriptions: List[CountingSubscription] = []

    def start(self) -> None:
        self.starts += 1

    def stop(self) -> None:
        self.stops += 1

    def subscribe(self, on_frame) -> CountingSubscription:
        sub = CountingSubscription(self, on_frame)
        self.subscriptions.append(sub)
        return sub

    @property
    def active_subscriptions(self) -> List[CountingSubscription]:
        return [s for s in self.subscriptions if not s.cancelled]

    def push(self, codes: List[str]) -> None:
        for sub in self.active_subscriptions:
            sub.callback(list(codes))


@pytest.fixture
def provider() -> CountingProvider:
    return CountingProvider()


@pytest.fixture
def decoder_factory():
    return PartDecoder
