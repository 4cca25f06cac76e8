"""REST client for the SportsApp API.

Every call goes through `request()`, which raises `ApiError` carrying the
server's "<status>: <text>" message for any non-2xx response so callers can
show it unchanged. Query functions for the query client are built with
`query_fn()`: the request URL is the query key joined with "/".
"""

from collections.abc import Mapping
from typing import Any, Literal
from urllib.parse import quote

import httpx
import structlog

from sportsapp.config import get_settings
from sportsapp.core.exceptions import ApiError, NetworkError, UnauthorizedError
from sportsapp.query.cache import QueryFn, QueryKey

logger = structlog.get_logger(__name__)

UnauthorizedBehavior = Literal["throw", "return_null"]


def key_to_url(key: QueryKey) -> str:
    """("/api/users", 7, "posts") -> "/api/users/7/posts"."""
    return "/".join(str(part) for part in key)


class ApiClient:
    """Async client for the SportsApp REST API.

    Usage:
        ```python
        api = ApiClient(base_url="http://localhost:5000")
        await api.request("POST", "/api/posts/7/point")
        feed = await query_client.fetch_query(("/api/posts",), api.query_fn())
        ```
    """

    def __init__(
        self,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = get_settings()
        self.base_url = base_url if base_url is not None else self._settings.api_base_url
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._settings.upstream_timeout,
                headers={"User-Agent": f"{self._settings.app_name}/{self._settings.app_version}"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        url: str,
        data: Any = None,
        files: Mapping[str, Any] | None = None,
    ) -> httpx.Response:
        """Send a request and fail on any non-2xx status.

        Args:
            method: HTTP method
            url: Path relative to the API base URL
            data: JSON body (or form fields when `files` is given)
            files: Multipart file parts

        Returns:
            The successful response

        Raises:
            UnauthorizedError: On 401
            ApiError: On any other non-2xx status
            NetworkError: When no response was received
        """
        client = await self._get_client()
        kwargs: dict[str, Any] = {}
        if files is not None:
            kwargs["files"] = files
            if data is not None:
                kwargs["data"] = data
        elif data is not None:
            kwargs["json"] = data

        try:
            response = await client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.error("api_request_error", method=method, url=url, error=str(e))
            raise NetworkError(url=url, error=str(e)) from e

        raise_for_status(response)
        return response

    def query_fn(self, on_401: UnauthorizedBehavior = "throw") -> QueryFn:
        """Build a query function that GETs the joined query key.

        Args:
            on_401: "return_null" resolves to None for unauthenticated
                users, "throw" raises UnauthorizedError
        """

        async def fetch(key: QueryKey) -> Any:
            url = key_to_url(key)
            try:
                response = await self.request("GET", url)
            except UnauthorizedError:
                if on_401 == "return_null":
                    logger.debug("query_unauthorized", url=url)
                    return None
                raise
            return response.json()

        return fetch

    async def get_json(self, url: str) -> Any:
        response = await self.request("GET", url)
        return response.json()

    # -------------------------------------------------------------------------
    # Account helpers
    # -------------------------------------------------------------------------

    async def check_username(self, username: str) -> dict[str, Any]:
        """Availability of a username (may include suggestions)."""
        return await self._check("username", username)

    async def check_email(self, email: str) -> dict[str, Any]:
        return await self._check("email", email)

    async def check_phone(self, phone: str) -> dict[str, Any]:
        return await self._check("phone", phone)

    async def quick_login(self, username: str, token: str) -> Any:
        """Log in with a saved quick-login token."""
        response = await self.request(
            "POST", "/api/quick-login", {"username": username, "token": token}
        )
        return response.json()

    async def _check(self, kind: str, value: str) -> dict[str, Any]:
        url = f"/api/check-{kind}/{quote(value, safe='')}"
        return await self.get_json(url)


def raise_for_status(response: httpx.Response) -> None:
    """Raise ApiError with the server text for non-2xx responses."""
    if response.is_success:
        return
    text = response.text or response.reason_phrase
    url = str(response.request.url)
    if response.status_code == 401:
        raise UnauthorizedError(text=text, url=url)
    raise ApiError(status=response.status_code, text=text, url=url)
