"""Verification of inbound webhook deliveries before their content is trusted."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Union

from .errors import InvalidSignatureError, TransportError
from .keys import PublicKey
from .rest import AccessClient, Resource, T
from .signing import decode_signature, verify

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Digital-Signature"

Content = Union[str, bytes]


def verify_payload(public_keys: Iterable[PublicKey], content: Content, signature: Union[str, bytes]) -> bool:
    """True when ``signature`` matches the raw ``content`` under any of ``public_keys``."""
    return verify(public_keys, content, signature)


async def verify_webhook(client: AccessClient, content: Content, signature: Union[str, bytes]) -> bool:
    """
    Check a delivery against the service keys, tolerating one key rotation.

    The cached keys are tried first. On a miss the cache is refreshed once and
    the check repeated, so a key published after the cache was filled is still
    accepted. A malformed signature raises before any key is fetched.
    """
    decode_signature(signature)
    keys = await client.public_keys()
    if verify_payload(keys, content, signature):
        return True

    logger.warning("Webhook signature did not match %d cached public key(s); refreshing", len(keys))
    keys = await client.refresh_public_keys()
    return verify_payload(keys, content, signature)


def _load(content: Content) -> Dict[str, Any]:
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise TransportError("Webhook content is not valid JSON", raw=content if isinstance(content, str) else None) from exc
    if not isinstance(data, dict):
        raise TransportError("Webhook content is not a JSON object")
    return data


async def parse_webhook(
    client: AccessClient,
    resource: Resource[T],
    content: Content,
    signature: Union[str, bytes],
) -> T:
    """Verify ``content`` and only then decode it as ``resource``."""
    if not await verify_webhook(client, content, signature):
        raise InvalidSignatureError("The provided digital signature and content do not match the service public key")
    data = _load(content)
    return resource.decode(data.get(resource.singular, data))
