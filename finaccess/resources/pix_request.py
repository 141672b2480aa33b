"""PixRequest wrappers: send and look up Pix transfer requests."""
from __future__ import annotations

from datetime import date
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Union

from ..core.data_models import PixRequest
from ..core.query import Query
from ..core.rest import AccessClient, Page, Resource, resolve_client
from ..core.result import Result
from ..core.user import User


def _decode(json: Dict[str, Any]) -> PixRequest:
    return PixRequest.model_validate(json)


resource: Resource[PixRequest] = Resource("PixRequest", _decode)


def _query(
    limit: Optional[int] = None,
    after: Optional[Union[date, str]] = None,
    before: Optional[Union[date, str]] = None,
    status: Optional[Sequence[str]] = None,
    ids: Optional[Sequence[str]] = None,
    end_to_end_ids: Optional[Sequence[str]] = None,
    external_ids: Optional[Sequence[str]] = None,
    tags: Optional[Sequence[str]] = None,
    cursor: Optional[str] = None,
    user: Optional[User] = None,
) -> Query:
    return Query(
        limit=limit,
        after=after,
        before=before,
        ids=ids,
        cursor=cursor,
        user=user,
        filters={
            "status": status,
            "end_to_end_ids": end_to_end_ids,
            "external_ids": external_ids,
            "tags": tags,
        },
    )


async def create_result(
    requests: Iterable[Union[PixRequest, Dict[str, Any]]],
    *,
    user: Optional[User] = None,
    client: Optional[AccessClient] = None,
) -> Result[List[PixRequest]]:
    return await resolve_client(client).post_result(resource, requests, user=user)


async def create(
    requests: Iterable[Union[PixRequest, Dict[str, Any]]],
    *,
    user: Optional[User] = None,
    client: Optional[AccessClient] = None,
) -> List[PixRequest]:
    """Send a list of PixRequests to the API."""
    return (await create_result(requests, user=user, client=client)).unwrap()


async def get_result(id: str, *, user: Optional[User] = None, client: Optional[AccessClient] = None) -> Result[PixRequest]:
    return await resolve_client(client).get_id_result(resource, id, user=user)


async def get(id: str, *, user: Optional[User] = None, client: Optional[AccessClient] = None) -> PixRequest:
    """Receive a single PixRequest by its id."""
    return (await get_result(id, user=user, client=client)).unwrap()


def query_result(*, client: Optional[AccessClient] = None, **options: Any) -> AsyncIterator[Result[PixRequest]]:
    return resolve_client(client).stream_result(resource, _query(**options))


def query(*, client: Optional[AccessClient] = None, **options: Any) -> AsyncIterator[PixRequest]:
    """
    Stream PixRequests, newest first.

    Options: ``limit`` (total, unlimited if None), ``after``, ``before``,
    ``status``, ``ids``, ``end_to_end_ids``, ``external_ids``, ``tags``, ``user``.
    """
    return resolve_client(client).stream(resource, _query(**options))


async def page_result(*, client: Optional[AccessClient] = None, **options: Any) -> Result[Page[PixRequest]]:
    return await resolve_client(client).get_page_result(resource, _query(**options))


async def page(*, client: Optional[AccessClient] = None, **options: Any) -> Page[PixRequest]:
    """Receive up to 100 PixRequests plus the cursor to the next page. Accepts ``cursor`` besides the query options."""
    return (await page_result(client=client, **options)).unwrap()
