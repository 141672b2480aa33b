"""ECDSA key material: the caller's private key and the service's public keys."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Iterator, Optional, Sequence, Tuple, Union

import ecdsa
from ecdsa.curves import UnknownCurveError
from ecdsa.der import UnexpectedDER

from .errors import InvalidKeyError

logger = logging.getLogger(__name__)

CURVE = ecdsa.SECP256k1


class PublicKey:
    """Verification key published by the remote service."""

    __slots__ = ("_key",)

    def __init__(self, key: ecdsa.VerifyingKey) -> None:
        if key.curve != CURVE:
            raise InvalidKeyError(f"Public key must use {CURVE.name}, got {key.curve.name}")
        self._key = key

    @classmethod
    def from_pem(cls, pem: Union[str, bytes]) -> "PublicKey":
        try:
            return cls(ecdsa.VerifyingKey.from_pem(pem))
        except InvalidKeyError:
            raise
        except (ValueError, UnexpectedDER, UnknownCurveError, ecdsa.MalformedPointError) as exc:
            raise InvalidKeyError(f"Could not load public key: {exc}") from exc

    @property
    def verifying_key(self) -> ecdsa.VerifyingKey:
        return self._key

    def to_pem(self) -> str:
        return self._key.to_pem().decode("ascii")

    def __eq__(self, other: object) -> bool:
        return isinstance(other, PublicKey) and self._key.to_string() == other._key.to_string()

    def __hash__(self) -> int:
        return hash(self._key.to_string())

    def __repr__(self) -> str:
        return f"PublicKey({self._key.to_string('compressed').hex()[:16]}...)"


class PrivateKey:
    """
    Caller-held signing key.

    The scalar never leaves this object except through ``to_pem``; ``repr`` and
    ``str`` are masked so the key cannot end up in logs by accident.
    """

    __slots__ = ("_key",)

    def __init__(self, key: ecdsa.SigningKey) -> None:
        if key.curve != CURVE:
            raise InvalidKeyError(f"Private key must use {CURVE.name}, got {key.curve.name}")
        self._key = key

    @classmethod
    def generate(cls) -> "PrivateKey":
        return cls(ecdsa.SigningKey.generate(curve=CURVE))

    @classmethod
    def from_pem(cls, pem: Union[str, bytes]) -> "PrivateKey":
        if not pem:
            raise InvalidKeyError("Private key PEM is empty")
        try:
            return cls(ecdsa.SigningKey.from_pem(pem))
        except InvalidKeyError:
            raise
        except (ValueError, UnexpectedDER, UnknownCurveError, ecdsa.MalformedPointError) as exc:
            raise InvalidKeyError("Could not load private key from PEM") from exc

    @classmethod
    def coerce(cls, value: Union["PrivateKey", str, bytes]) -> "PrivateKey":
        if isinstance(value, PrivateKey):
            return value
        if isinstance(value, (str, bytes)):
            return cls.from_pem(value)
        raise InvalidKeyError(f"Unsupported private key type {type(value).__name__}")

    @property
    def signing_key(self) -> ecdsa.SigningKey:
        return self._key

    def public_key(self) -> PublicKey:
        return PublicKey(self._key.get_verifying_key())

    def to_pem(self) -> str:
        return self._key.to_pem().decode("ascii")

    def __repr__(self) -> str:
        return "PrivateKey(***)"

    __str__ = __repr__


class PublicKeySet(Sequence[PublicKey]):
    """Ordered, immutable set of verification keys; newest first."""

    def __init__(self, keys: Iterable[PublicKey] = ()) -> None:
        unique: list = []
        for key in keys:
            if key not in unique:
                unique.append(key)
        self._keys: Tuple[PublicKey, ...] = tuple(unique)

    @classmethod
    def from_pems(cls, pems: Iterable[Union[str, bytes]]) -> "PublicKeySet":
        return cls(PublicKey.from_pem(pem) for pem in pems)

    def __getitem__(self, index):  # type: ignore[override]
        return self._keys[index]

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[PublicKey]:
        return iter(self._keys)

    def __repr__(self) -> str:
        return f"PublicKeySet({len(self._keys)} keys)"


KeyLoader = Callable[[], Awaitable[PublicKeySet]]


class PublicKeyCache:
    """
    Lazily loaded, process-lifetime cache of the service's public keys.

    Readers never see a partially built set: the cached value is swapped as a
    whole. The lock only serialises loads so concurrent first readers share one
    fetch.
    """

    def __init__(self, keys: Optional[PublicKeySet] = None) -> None:
        self._keys = keys
        self._lock: Optional[asyncio.Lock] = None

    @property
    def cached(self) -> Optional[PublicKeySet]:
        return self._keys

    async def get(self, loader: KeyLoader) -> PublicKeySet:
        if self._keys is not None:
            return self._keys
        # created on first use so it binds to the loop that awaits it
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._keys is None:
                logger.info("Loading service public keys")
                self._keys = await loader()
                logger.info("Loaded %d service public key(s)", len(self._keys))
        return self._keys

    def invalidate(self) -> None:
        """Allow callers to force a public key refresh (e.g., after key rotation)."""
        self._keys = None

    async def refresh(self, loader: KeyLoader) -> PublicKeySet:
        self.invalidate()
        return await self.get(loader)
