"""Read views bound to their staleness tiers.

Each helper fixes the query key and tier for one view, so every caller of
the same view shares one cache entry and one in-flight fetch.

    View                         Tier
    feed, post comments          frequent
    notifications, unread counts realtime
    profiles, sports news        static
    admin lists and stats        admin
"""

from typing import Any
from urllib.parse import urlencode

from sportsapp.query.cache import QueryClient, QueryFn, QueryKey, QueryObserver
from sportsapp.query.profiles import QueryTier
from sportsapp.services.api_client import ApiClient


class QueryService:
    """Typed entry points for the SportsApp read views."""

    def __init__(self, api: ApiClient, query_client: QueryClient) -> None:
        self.api = api
        self.query_client = query_client

    def _url_fn(self, url: str) -> QueryFn:
        async def fetch(_key: QueryKey) -> Any:
            return await self.api.get_json(url)

        return fetch

    async def _get(
        self,
        key: QueryKey,
        tier: QueryTier,
        fn: QueryFn | None = None,
    ) -> Any:
        return await self.query_client.fetch_query(key, fn or self.api.query_fn(), tier=tier)

    # -------------------------------------------------------------------------
    # Feed
    # -------------------------------------------------------------------------

    @staticmethod
    def feed_key(post_type: str = "all") -> QueryKey:
        return ("/api/posts", post_type)

    @staticmethod
    def _feed_url(post_type: str) -> str:
        if post_type == "all":
            return "/api/posts"
        return f"/api/posts?{urlencode({'type': post_type})}"

    async def feed(self, post_type: str = "all") -> Any:
        return await self._get(
            self.feed_key(post_type), QueryTier.FREQUENT, self._url_fn(self._feed_url(post_type))
        )

    def observe_feed(self, post_type: str = "all") -> QueryObserver:
        return self.query_client.observe(
            self.feed_key(post_type),
            self._url_fn(self._feed_url(post_type)),
            tier=QueryTier.FREQUENT,
        )

    async def post_comments(self, post_id: Any) -> Any:
        return await self._get(("/api/posts", post_id, "comments"), QueryTier.FREQUENT)

    # -------------------------------------------------------------------------
    # Realtime counters
    # -------------------------------------------------------------------------

    async def notifications(self) -> Any:
        return await self._get(("/api/notifications",), QueryTier.REALTIME)

    async def unread_notifications(self) -> Any:
        return await self._get(("/api/notifications/unread-count",), QueryTier.REALTIME)

    async def unread_conversations(self) -> Any:
        return await self._get(("/api/conversations/unread-count",), QueryTier.REALTIME)

    def observe_unread_notifications(self) -> QueryObserver:
        return self.query_client.observe(
            ("/api/notifications/unread-count",),
            self.api.query_fn(),
            tier=QueryTier.REALTIME,
        )

    async def conversations(self) -> Any:
        return await self._get(("/api/conversations",), QueryTier.FREQUENT)

    # -------------------------------------------------------------------------
    # Profiles and content
    # -------------------------------------------------------------------------

    async def current_user(self) -> Any:
        """The logged-in user, or None when not authenticated."""
        return await self._get(("/api/user",), QueryTier.STATIC, self.api.query_fn("return_null"))

    async def user_profile(self, user_id: Any) -> Any:
        return await self._get(("/api/users", user_id, "profile"), QueryTier.STATIC)

    async def user_posts(self, user_id: Any) -> Any:
        return await self._get(("/api/users", user_id, "posts"), QueryTier.FREQUENT)

    async def user_redemptions(self, user_id: Any) -> Any:
        return await self._get(("/api/users", user_id, "redemptions"), QueryTier.STATIC)

    async def search_users(self, query: str) -> Any:
        """Users matching a search term; a blank term matches nobody."""
        if not query.strip():
            return []
        url = f"/api/users/search?{urlencode({'q': query})}"
        return await self._get(("/api/users/search", query), QueryTier.FREQUENT, self._url_fn(url))

    async def drills(self, sport: str) -> Any:
        return await self._get(("/api/drills", sport), QueryTier.STATIC)

    async def sports_news(self, page: int = 1) -> Any:
        url = f"/api/sports-news?{urlencode({'page': page})}"
        return await self._get(("/api/sports-news", page), QueryTier.STATIC, self._url_fn(url))

    # -------------------------------------------------------------------------
    # Admin
    # -------------------------------------------------------------------------

    async def admin_status(self) -> Any:
        return await self._get(
            ("/api/admin/status",), QueryTier.ADMIN, self.api.query_fn("return_null")
        )

    async def admin_posts(self) -> Any:
        return await self._get(("/api/admin/posts",), QueryTier.ADMIN)

    async def admin_post_stats(self) -> Any:
        return await self._get(("/api/admin/posts/stats",), QueryTier.ADMIN)

    async def reported_posts(self) -> Any:
        return await self._get(("/api/admin/reported-posts",), QueryTier.ADMIN)

    async def verification_requests(self) -> Any:
        return await self._get(("/api/admin/verification-requests",), QueryTier.ADMIN)

    async def admin_redemptions(self) -> Any:
        return await self._get(("/api/admin/redemptions",), QueryTier.ADMIN)

    async def admin_drills(self) -> Any:
        return await self._get(("/api/admin/drills",), QueryTier.ADMIN)

    async def admin_tryouts(self) -> Any:
        return await self._get(("/api/admin/tryout-applications",), QueryTier.ADMIN)

    async def users(self) -> Any:
        return await self._get(("/api/users",), QueryTier.ADMIN)
