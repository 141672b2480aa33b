"""Webhook events. Content must be verified before it is decoded."""
from __future__ import annotations

from typing import Any, Dict, Optional, Union

from ..core.data_models import Event
from ..core.errors import FinAccessError
from ..core.rest import AccessClient, Resource, resolve_client
from ..core.result import Result
from ..core.webhook import parse_webhook


def _decode(json: Dict[str, Any]) -> Event:
    return Event.model_validate(json)


resource: Resource[Event] = Resource("Event", _decode)


async def parse_result(
    content: Union[str, bytes],
    signature: Union[str, bytes],
    *,
    client: Optional[AccessClient] = None,
) -> Result[Event]:
    try:
        return Result.success(await parse_webhook(resolve_client(client), resource, content, signature))
    except FinAccessError as error:
        return Result.failure(error)


async def parse(
    content: Union[str, bytes],
    signature: Union[str, bytes],
    *,
    client: Optional[AccessClient] = None,
) -> Event:
    """
    Verify a webhook delivery and decode it.

    ``content`` is the raw request body and ``signature`` the value of the
    ``Digital-Signature`` header. Raises ``InvalidSignatureError`` when the
    signature does not match and ``MalformedSignatureError`` when it cannot be
    read at all.
    """
    return (await parse_result(content, signature, client=client)).unwrap()
