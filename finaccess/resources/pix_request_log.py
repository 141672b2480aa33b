"""PixRequest.Log wrappers. Logs are created by the API on every status change."""
from __future__ import annotations

from datetime import date
from typing import Any, AsyncIterator, Dict, Optional, Sequence, Union

from ..core.data_models import PixRequestLog
from ..core.query import Query
from ..core.rest import AccessClient, Page, Resource, resolve_client
from ..core.result import Result
from ..core.user import User

LOG_TYPES = ("sent", "denied", "failed", "created", "success", "approved", "credited", "refunded", "processing")


def _decode(json: Dict[str, Any]) -> PixRequestLog:
    return PixRequestLog.model_validate(json)


resource: Resource[PixRequestLog] = Resource("PixRequestLog", _decode)


def _query(
    limit: Optional[int] = None,
    after: Optional[Union[date, str]] = None,
    before: Optional[Union[date, str]] = None,
    types: Optional[Sequence[str]] = None,
    request_ids: Optional[Sequence[str]] = None,
    reconciliation_id: Optional[str] = None,
    cursor: Optional[str] = None,
    user: Optional[User] = None,
) -> Query:
    return Query(
        limit=limit,
        after=after,
        before=before,
        types=types,
        cursor=cursor,
        user=user,
        filters={"request_ids": request_ids, "reconciliation_id": reconciliation_id},
    )


async def get_result(id: str, *, user: Optional[User] = None, client: Optional[AccessClient] = None) -> Result[PixRequestLog]:
    return await resolve_client(client).get_id_result(resource, id, user=user)


async def get(id: str, *, user: Optional[User] = None, client: Optional[AccessClient] = None) -> PixRequestLog:
    return (await get_result(id, user=user, client=client)).unwrap()


def query_result(*, client: Optional[AccessClient] = None, **options: Any) -> AsyncIterator[Result[PixRequestLog]]:
    return resolve_client(client).stream_result(resource, _query(**options))


def query(*, client: Optional[AccessClient] = None, **options: Any) -> AsyncIterator[PixRequestLog]:
    """
    Stream PixRequest.Logs.

    Options: ``limit``, ``after``, ``before``, ``types`` (see ``LOG_TYPES``),
    ``request_ids``, ``reconciliation_id``, ``user``.
    """
    return resolve_client(client).stream(resource, _query(**options))


async def page_result(*, client: Optional[AccessClient] = None, **options: Any) -> Result[Page[PixRequestLog]]:
    return await resolve_client(client).get_page_result(resource, _query(**options))


async def page(*, client: Optional[AccessClient] = None, **options: Any) -> Page[PixRequestLog]:
    return (await page_result(client=client, **options)).unwrap()
