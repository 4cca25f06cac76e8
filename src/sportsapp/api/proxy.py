"""Catch-all caching proxy.

Every request not handled by another route is passed to the active worker,
which answers from the offline cache or forwards to the upstream origin.
The request destination comes from the Sec-Fetch-Dest header, so page
navigations get the offline page when the upstream is unreachable.
"""

from fastapi import APIRouter, Request, Response

from sportsapp.core.exceptions import OfflineResponseUnavailableError
from sportsapp.dependencies import WorkerDep
from sportsapp.offline.storage import CachedRequest

router = APIRouter()

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Request headers that belong to the hop between the browser and the gateway
_EXCLUDED_REQUEST_HEADERS = frozenset(
    {"host", "connection", "content-length", "keep-alive", "transfer-encoding"}
)


def to_cached_request(request: Request, body: bytes) -> CachedRequest:
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return CachedRequest(
        url=url,
        method=request.method,
        headers={
            k: v
            for k, v in request.headers.items()
            if k.lower() not in _EXCLUDED_REQUEST_HEADERS
        },
        destination=request.headers.get("sec-fetch-dest", ""),
        body=body or None,
    )


@router.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy(path: str, request: Request, worker: WorkerDep) -> Response:
    """Serve a request cache first, falling back to the upstream origin.

    Raises:
        OfflineResponseUnavailableError: Upstream unreachable and nothing
            cached (504)
    """
    cached_request = to_cached_request(request, await request.body())
    response = await worker.handle_fetch(cached_request)
    if response is None:
        raise OfflineResponseUnavailableError(url=cached_request.url)
    return Response(
        content=response.body,
        status_code=response.status,
        headers=response.headers,
    )
