"""ECDSA-SHA256 signing of outbound messages and verification of inbound ones."""
from __future__ import annotations

import base64
import binascii
import hashlib
import logging
from typing import Iterable, Optional, Tuple, Union

from ecdsa import BadSignatureError
from ecdsa.der import UnexpectedDER
from ecdsa.util import MalformedSignature, sigdecode_der, sigencode_der

from .errors import InvalidKeyError, MalformedSignatureError
from .keys import CURVE, PrivateKey, PublicKey

logger = logging.getLogger(__name__)

HASH_FUNC = hashlib.sha256

Message = Union[str, bytes]


def _to_bytes(message: Message) -> bytes:
    if isinstance(message, bytes):
        return message
    return message.encode("utf-8")


def sign(private_key: Union[PrivateKey, str, bytes], message: Message, *, nonce: Optional[int] = None) -> str:
    """
    Sign ``message`` and return the base64-encoded DER signature.

    The default nonce is derived deterministically (RFC 6979), so the same key
    and message always produce the same signature. ``nonce`` pins k explicitly
    and exists for fixed test vectors only.
    """
    key = PrivateKey.coerce(private_key)
    data = _to_bytes(message)
    try:
        if nonce is None:
            raw = key.signing_key.sign_deterministic(data, hashfunc=HASH_FUNC, sigencode=sigencode_der)
        else:
            raw = key.signing_key.sign(data, k=nonce, hashfunc=HASH_FUNC, sigencode=sigencode_der)
    except (ValueError, RuntimeError) as exc:
        raise InvalidKeyError(f"Unable to sign with the supplied key: {exc}") from exc
    return base64.b64encode(raw).decode("ascii")


def decode_signature(signature: Union[str, bytes]) -> Tuple[bytes, Tuple[int, int]]:
    """Parse a base64 DER signature, raising MalformedSignatureError when it cannot be read."""
    if not signature:
        raise MalformedSignatureError("Signature is empty")
    try:
        raw = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedSignatureError("Signature is not valid base64") from exc
    try:
        r, s = sigdecode_der(raw, CURVE.order)
    except (UnexpectedDER, MalformedSignature) as exc:
        raise MalformedSignatureError(f"Signature is not a DER-encoded ECDSA signature: {exc}") from exc
    return raw, (r, s)


def verify(public_keys: Iterable[PublicKey], message: Message, signature: Union[str, bytes]) -> bool:
    """
    Check ``signature`` over ``message`` against each candidate key in order.

    Returns True at the first key that validates and False once the keys are
    exhausted. Only a signature that cannot be parsed raises.
    """
    raw, _ = decode_signature(signature)
    data = _to_bytes(message)
    for index, key in enumerate(public_keys):
        try:
            key.verifying_key.verify(raw, data, hashfunc=HASH_FUNC, sigdecode=sigdecode_der)
        except BadSignatureError:
            continue
        if index:
            logger.info("Signature matched public key #%d (older key still in rotation window)", index)
        return True
    return False
