"""
Typed registry items carried inside UR payloads.

Only crypto-hdkey is parsed into an object; it nests crypto-coininfo
(tag 305) and crypto-keypath (tag 304). Map keys and tags follow the
BCR-2020-007 registry.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import base58
import cbor2

TAG_CRYPTO_KEYPATH = 304
TAG_CRYPTO_COININFO = 305

HARDENED_BIT = 0x80000000

# crypto-hdkey map keys
IS_MASTER = 1
IS_PRIVATE = 2
KEY_DATA = 3
CHAIN_CODE = 4
USE_INFO = 5
ORIGIN = 6
CHILDREN = 7
PARENT_FINGERPRINT = 8
NAME = 9
NOTE = 10

XPRV_VERSION = bytes([0x04, 0x88, 0xAD, 0xE4])
XPUB_VERSION = bytes([0x04, 0x88, 0xB2, 0x1E])


class RegistryError(ValueError):
    """Raised when CBOR data is not a valid registry item."""


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _expect_tag(value, tag: int, what: str):
    if not isinstance(value, cbor2.CBORTag) or value.tag != tag:
        raise RegistryError(f"crypto-hdkey.{what}: expected CBOR tag {tag}")
    return value.value


def _expect_map(value, what: str) -> dict:
    if not isinstance(value, dict):
        raise RegistryError(f"{what}: expected a CBOR map")
    return value


class CoinType(Enum):
    BITCOIN = 0
    ETHEREUM = 60


class Network(Enum):
    MAINNET = 0
    TESTNET = 1


@dataclass
class CryptoCoinInfo:
    coin_type: Optional[CoinType] = None
    network: Optional[Network] = None

    def get_coin_type(self) -> CoinType:
        return self.coin_type or CoinType.BITCOIN

    def get_network(self) -> Network:
        return self.network or Network.MAINNET

    def to_cbor(self) -> dict:
        cbor = {}
        if self.coin_type is not None:
            cbor[1] = self.coin_type.value
        if self.network is not None:
            cbor[2] = self.network.value
        return cbor

    @classmethod
    def from_cbor(cls, cbor) -> "CryptoCoinInfo":
        data = _expect_map(cbor, "crypto-coininfo")
        try:
            coin_type = CoinType(data[1]) if 1 in data else None
            network = Network(data[2]) if 2 in data else None
        except ValueError as exc:
            raise RegistryError(f"crypto-coininfo: {exc}") from exc
        return cls(coin_type=coin_type, network=network)


@dataclass
class PathComponent:
    """One derivation step; index None is a wildcard (`*`)."""

    index: Optional[int]
    hardened: bool

    def __post_init__(self):
        if self.index is not None and not 0 <= self.index < HARDENED_BIT:
            raise RegistryError(f"Path component index {self.index} out of range")

    def get_canonical_index(self) -> Optional[int]:
        if self.index is None:
            return None
        return self.index | HARDENED_BIT if self.hardened else self.index

    def __str__(self) -> str:
        text = "*" if self.index is None else str(self.index)
        return f"{text}'" if self.hardened else text


@dataclass
class CryptoKeyPath:
    components: List[PathComponent] = field(default_factory=list)
    source_fingerprint: Optional[bytes] = None
    depth: Optional[int] = None

    def get_path(self) -> Optional[str]:
        if not self.components:
            return None
        return "/".join(str(c) for c in self.components)

    def to_cbor(self) -> dict:
        flat = []
        for c in self.components:
            flat.append([] if c.index is None else c.index)
            flat.append(c.hardened)
        cbor = {1: flat}
        if self.source_fingerprint is not None:
            cbor[2] = int.from_bytes(self.source_fingerprint, "big")
        if self.depth is not None:
            cbor[3] = self.depth
        return cbor

    @classmethod
    def from_cbor(cls, cbor) -> "CryptoKeyPath":
        data = _expect_map(cbor, "crypto-keypath")
        flat = data.get(1)
        if not isinstance(flat, list) or len(flat) % 2:
            raise RegistryError("crypto-keypath.components: expected index/hardened pairs")
        components = []
        for index, hardened in zip(flat[0::2], flat[1::2]):
            if not isinstance(hardened, bool):
                raise RegistryError("crypto-keypath.components: hardened flag must be a bool")
            if index == []:
                components.append(PathComponent(None, hardened))
            elif _is_int(index):
                components.append(PathComponent(index, hardened))
            else:
                raise RegistryError("crypto-keypath.components: unexpected index value")
        fingerprint = data.get(2)
        if fingerprint is not None:
            if not _is_int(fingerprint):
                raise RegistryError("crypto-keypath.source_fingerprint: expected an integer")
            fingerprint = fingerprint.to_bytes(4, "big")
        depth = data.get(3)
        if depth is not None and not _is_int(depth):
            raise RegistryError("crypto-keypath.depth: expected an integer")
        return cls(components=components, source_fingerprint=fingerprint, depth=depth)


@dataclass
class CryptoHDKey:
    """A BIP32 master or derived key (UR type `crypto-hdkey`)."""

    key: bytes
    chain_code: Optional[bytes] = None
    is_master: bool = False
    is_private_key: Optional[bool] = None
    use_info: Optional[CryptoCoinInfo] = None
    origin: Optional[CryptoKeyPath] = None
    children: Optional[CryptoKeyPath] = None
    parent_fingerprint: Optional[bytes] = None
    name: Optional[str] = None
    note: Optional[str] = None

    @classmethod
    def new_master_key(cls, key: bytes, chain_code: bytes) -> "CryptoHDKey":
        return cls(key=key, chain_code=chain_code, is_master=True)

    def get_bip32_key(self) -> str:
        """Serialize as a base58check xprv/xpub string."""
        depth = 0
        index = 0
        if self.is_master or self.is_private_key:
            version = XPRV_VERSION
        else:
            version = XPUB_VERSION
        if not self.is_master and self.origin is not None and self.origin.components:
            depth = len(self.origin.components)
            index = self.origin.components[-1].get_canonical_index() or 0
        output = b"".join(
            [
                version,
                depth.to_bytes(1, "big"),
                self.parent_fingerprint or bytes(4),
                index.to_bytes(4, "big"),
                self.chain_code or bytes(32),
                self.key,
            ]
        )
        return base58.b58encode_check(output).decode("ascii")

    def to_cbor(self) -> dict:
        if self.is_master:
            return {IS_MASTER: True, KEY_DATA: self.key, CHAIN_CODE: self.chain_code}
        cbor = {}
        if self.is_private_key is not None:
            cbor[IS_PRIVATE] = self.is_private_key
        cbor[KEY_DATA] = self.key
        if self.chain_code is not None:
            cbor[CHAIN_CODE] = self.chain_code
        if self.use_info is not None:
            cbor[USE_INFO] = cbor2.CBORTag(TAG_CRYPTO_COININFO, self.use_info.to_cbor())
        if self.origin is not None:
            cbor[ORIGIN] = cbor2.CBORTag(TAG_CRYPTO_KEYPATH, self.origin.to_cbor())
        if self.children is not None:
            cbor[CHILDREN] = cbor2.CBORTag(TAG_CRYPTO_KEYPATH, self.children.to_cbor())
        if self.parent_fingerprint is not None:
            cbor[PARENT_FINGERPRINT] = int.from_bytes(self.parent_fingerprint, "big")
        if self.name is not None:
            cbor[NAME] = self.name
        if self.note is not None:
            cbor[NOTE] = self.note
        return cbor

    def to_bytes(self) -> bytes:
        return cbor2.dumps(self.to_cbor())

    @classmethod
    def from_cbor(cls, cbor) -> "CryptoHDKey":
        data = _expect_map(cbor, "crypto-hdkey")

        is_master = data.get(IS_MASTER)
        if is_master is not None and not isinstance(is_master, bool):
            raise RegistryError("crypto-hdkey.is_master: expected a bool")

        key = data.get(KEY_DATA)
        if key is None:
            raise RegistryError("crypto-hdkey.key_data is required")
        if not isinstance(key, bytes):
            raise RegistryError("crypto-hdkey.key_data: expected a byte string")

        chain_code = data.get(CHAIN_CODE)
        if chain_code is not None and not isinstance(chain_code, bytes):
            raise RegistryError("crypto-hdkey.chain_code: expected a byte string")

        if is_master:
            if chain_code is None:
                raise RegistryError("crypto-hdkey.chain_code is required for a master key")
            return cls.new_master_key(key, chain_code)

        is_private = data.get(IS_PRIVATE)
        if is_private is not None and not isinstance(is_private, bool):
            raise RegistryError("crypto-hdkey.is_private_key: expected a bool")

        use_info = None
        if USE_INFO in data:
            use_info = CryptoCoinInfo.from_cbor(
                _expect_tag(data[USE_INFO], TAG_CRYPTO_COININFO, "use_info")
            )
        origin = None
        if ORIGIN in data:
            origin = CryptoKeyPath.from_cbor(
                _expect_tag(data[ORIGIN], TAG_CRYPTO_KEYPATH, "origin")
            )
        children = None
        if CHILDREN in data:
            children = CryptoKeyPath.from_cbor(
                _expect_tag(data[CHILDREN], TAG_CRYPTO_KEYPATH, "children")
            )

        parent_fingerprint = data.get(PARENT_FINGERPRINT)
        if parent_fingerprint is not None:
            if not _is_int(parent_fingerprint) or not 0 <= parent_fingerprint < 2**32:
                raise RegistryError("crypto-hdkey.parent_fingerprint: expected a 32-bit integer")
            parent_fingerprint = parent_fingerprint.to_bytes(4, "big")

        name = data.get(NAME)
        if name is not None and not isinstance(name, str):
            raise RegistryError("crypto-hdkey.name: expected text")
        note = data.get(NOTE)
        if note is not None and not isinstance(note, str):
            raise RegistryError("crypto-hdkey.note: expected text")

        return cls(
            key=key,
            chain_code=chain_code,
            is_master=False,
            is_private_key=is_private,
            use_info=use_info,
            origin=origin,
            children=children,
            parent_fingerprint=parent_fingerprint,
            name=name,
            note=note,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "CryptoHDKey":
        try:
            cbor = cbor2.loads(data)
        except (cbor2.CBORDecodeError, ValueError, EOFError) as exc:
            raise RegistryError(f"crypto-hdkey: invalid CBOR: {exc}") from exc
        return cls.from_cbor(cbor)
