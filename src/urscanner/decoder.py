"""
Incremental fragment decoding.

A decoder accumulates QR fragment strings until a complete payload can be
reassembled. The session state machine only relies on the `Decoder`
protocol, so any backend with the same four methods can be swapped in.

`MultipartDecoder` is the bundled backend. It understands a simplified
UR-style grammar (case-insensitive):

    ur:<type>/<hex>                  single-part payload
    ur:<type>/<seq>-<total>/<hex>    part <seq> of <total>

Parts are plain sequential segments of the payload; there is no fountain
coding, so every part has to be seen at least once.

Payload types with a registry model (crypto-hdkey) are parsed on resolve;
bytes that are not a valid item of the requested type are a DecodeError.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from .registry import CryptoHDKey, RegistryError


class DecodeError(ValueError):
    """Raised for malformed, inconsistent or unresolvable fragments."""


class SupportedType(Enum):
    BYTES = "bytes"
    CRYPTO_HDKEY = "crypto-hdkey"
    CRYPTO_ACCOUNT = "crypto-account"
    CRYPTO_PSBT = "crypto-psbt"
    CRYPTO_OUTPUT = "crypto-output"
    ETH_SIGN_REQUEST = "eth-sign-request"

    @classmethod
    def parse(cls, name: str) -> "SupportedType":
        key = name.strip().lower()
        for member in cls:
            if member.value == key:
                return member
        known = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown payload type {name!r} (expected one of: {known})")


@dataclass(frozen=True)
class DecodedPayload:
    type: SupportedType
    data: bytes
    parts: int = 1
    # Parsed registry item, for types that have one (e.g. CryptoHDKey)
    value: Any = None

    def hex(self) -> str:
        return self.data.hex()


class Decoder(Protocol):
    def receive(self, fragment: str) -> None: ...

    def is_complete(self) -> bool: ...

    def resolve(self, target: SupportedType) -> DecodedPayload: ...

    def progress(self) -> float: ...


REGISTRY_PARSERS: Dict[SupportedType, Callable[[bytes], Any]] = {
    SupportedType.CRYPTO_HDKEY: CryptoHDKey.from_bytes,
}

_TYPE_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
_SEQ_RE = re.compile(r"^(\d+)-(\d+)$")


def parse_fragment(fragment: str) -> Tuple[str, int, int, bytes]:
    """
    Split a fragment into (type, seq, total, body).

    Single-part fragments are reported as part 1 of 1.
    """
    text = fragment.strip().lower()
    if not text.startswith("ur:"):
        raise DecodeError(f"Not a UR fragment: {fragment[:32]!r}")
    components = text[3:].split("/")
    if len(components) == 2:
        ur_type, body = components
        seq, total = 1, 1
    elif len(components) == 3:
        ur_type, seq_text, body = components
        match = _SEQ_RE.match(seq_text)
        if not match:
            raise DecodeError(f"Invalid sequence component {seq_text!r}")
        seq, total = int(match.group(1)), int(match.group(2))
        if total < 1 or not 1 <= seq <= total:
            raise DecodeError(f"Sequence {seq}-{total} out of range")
    else:
        raise DecodeError(f"Unexpected number of path components in {fragment[:32]!r}")

    if not _TYPE_RE.match(ur_type):
        raise DecodeError(f"Invalid UR type {ur_type!r}")
    try:
        data = bytes.fromhex(body)
    except ValueError as exc:
        raise DecodeError(f"Fragment body is not hex: {exc}") from exc
    return ur_type, seq, total, data


class MultipartDecoder:
    """Reassembles sequential `ur:` fragments for one payload."""

    def __init__(self, target: Optional[SupportedType] = None):
        # The target is only checked at resolve time; mismatched parts are
        # still accepted so the caller sees a type error, not a parse error.
        self.target = target
        self._type: Optional[str] = None
        self._total: Optional[int] = None
        self._parts: Dict[int, bytes] = {}

    def receive(self, fragment: str) -> None:
        ur_type, seq, total, data = parse_fragment(fragment)

        if self._type is None:
            self._type = ur_type
            self._total = total
        elif ur_type != self._type:
            raise DecodeError(
                f"Fragment type {ur_type!r} does not match {self._type!r}"
            )
        elif total != self._total:
            raise DecodeError(
                f"Fragment total {total} does not match {self._total}"
            )

        existing = self._parts.get(seq)
        if existing is not None:
            if existing != data:
                raise DecodeError(f"Conflicting content for part {seq}")
            return
        self._parts[seq] = data

    def is_complete(self) -> bool:
        return self._total is not None and len(self._parts) == self._total

    def progress(self) -> float:
        if not self._total:
            return 0.0
        return len(self._parts) / self._total

    def resolve(self, target: SupportedType) -> DecodedPayload:
        if not self.is_complete():
            raise DecodeError("Cannot resolve an incomplete payload")
        if self._type != target.value:
            raise DecodeError(
                f"Payload type {self._type!r} does not match expected {target.value!r}"
            )
        data = b"".join(self._parts[i] for i in range(1, self._total + 1))
        value = None
        parser = REGISTRY_PARSERS.get(target)
        if parser is not None:
            try:
                value = parser(data)
            except RegistryError as exc:
                raise DecodeError(str(exc)) from exc
        return DecodedPayload(type=target, data=data, parts=self._total, value=value)
