"""Tests for mutations and their cache invalidation."""

import json
from typing import Any

import httpx
import pytest

from sportsapp.core.exceptions import ApiError, NetworkError
from sportsapp.query.cache import QueryClient
from sportsapp.services.api_client import ApiClient
from sportsapp.services.mutations import MutationService

ORIGIN = "http://upstream.test"


@pytest.fixture
def mutations(upstream_client: httpx.AsyncClient, query_client: QueryClient) -> MutationService:
    return MutationService(ApiClient(base_url=ORIGIN, client=upstream_client), query_client)


@pytest.fixture
def seeded(query_client: QueryClient) -> QueryClient:
    """Query client holding fresh data for a few views."""
    for key in [
        ("/api/posts", "all"),
        ("/api/posts", 42, "comments"),
        ("/api/admin/posts",),
        ("/api/admin/posts/stats",),
        ("/api/admin/reported-posts",),
        ("/api/notifications",),
        ("/api/notifications/unread-count",),
        ("/api/user",),
    ]:
        query_client.set_query_data(key, {})
    return query_client


class TestRun:
    @pytest.mark.asyncio
    async def test_success_invalidates(
        self, mutations: MutationService, seeded: QueryClient, upstream: Any
    ) -> None:
        upstream.add("/api/posts/42", "", status=204)

        assert await mutations.delete_post(42) is None

        assert seeded.is_stale(("/api/posts", "all"))
        assert seeded.is_stale(("/api/admin/posts/stats",))
        assert not seeded.is_stale(("/api/notifications",))
        assert upstream.requests[-1].method == "DELETE"

    @pytest.mark.asyncio
    async def test_rejected_request_leaves_cache_untouched(
        self, mutations: MutationService, seeded: QueryClient, upstream: Any
    ) -> None:
        upstream.add("/api/posts/42", "You can only delete your own posts", status=403)

        with pytest.raises(ApiError, match="^403: You can only delete your own posts$"):
            await mutations.delete_post(42)

        assert not seeded.is_stale(("/api/posts", "all"))

    @pytest.mark.asyncio
    async def test_network_failure_leaves_cache_untouched(
        self, mutations: MutationService, seeded: QueryClient, upstream: Any
    ) -> None:
        upstream.offline = True

        with pytest.raises(NetworkError):
            await mutations.mark_all_notifications_read()

        assert not seeded.is_stale(("/api/notifications",))

    @pytest.mark.asyncio
    async def test_json_body_returned(
        self, mutations: MutationService, seeded: QueryClient, upstream: Any
    ) -> None:
        upstream.add_json("/api/posts/42/comments", '{"id": 9, "content": "nice"}')

        comment = await mutations.add_comment(42, "nice")

        assert comment == {"id": 9, "content": "nice"}
        assert seeded.is_stale(("/api/posts", 42, "comments"))
        assert b'"content"' in upstream.requests[-1].content


class TestEndpoints:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "call,method,path",
        [
            (lambda m: m.give_point(7), "POST", "/api/posts/7/point"),
            (lambda m: m.report_post(7, "spam"), "POST", "/api/posts/7/report"),
            (lambda m: m.delete_comment(3), "DELETE", "/api/comments/3"),
            (lambda m: m.approve_verification(5), "POST", "/api/admin/verify-user/5"),
            (lambda m: m.reject_verification(5), "POST", "/api/admin/reject-user/5"),
            (lambda m: m.approve_redemption(2), "PUT", "/api/admin/redemptions/2/status"),
            (lambda m: m.approve_drill(8), "POST", "/api/admin/drills/8/approve"),
            (lambda m: m.reject_drill(8), "POST", "/api/admin/drills/8/reject"),
            (
                lambda m: m.update_tryout_status(4, "accepted"),
                "PATCH",
                "/api/admin/tryout-applications/4/status",
            ),
            (lambda m: m.delete_user(5), "DELETE", "/api/users/5"),
            (lambda m: m.redeem_points(5, {"voucher": 1}), "POST", "/api/users/5/redeem-voucher"),
            (lambda m: m.submit_drill(8), "POST", "/api/drills/8/submit"),
            (lambda m: m.apply_tryout({"tryout_id": 1}), "POST", "/api/tryouts"),
            (lambda m: m.update_profile(5, {"bio": "hi"}), "PUT", "/api/users/5/profile"),
            (lambda m: m.mark_notification_read(6), "PATCH", "/api/notifications/6/read"),
            (lambda m: m.send_message(1, "hey"), "POST", "/api/conversations/1/messages"),
            (lambda m: m.mark_conversation_read(1), "PATCH", "/api/conversations/1/read"),
        ],
    )
    async def test_routes(
        self,
        mutations: MutationService,
        upstream: Any,
        call: Any,
        method: str,
        path: str,
    ) -> None:
        upstream.add_json(path, "{}")

        await call(mutations)

        assert upstream.requests[-1].method == method
        assert upstream.requests[-1].url.raw_path.decode() == path

    @pytest.mark.asyncio
    async def test_redemption_status_body(
        self, mutations: MutationService, upstream: Any
    ) -> None:
        upstream.add_json("/api/admin/redemptions/2/status", "{}")

        await mutations.reject_redemption(2)

        assert json.loads(upstream.requests[-1].content) == {"status": "rejected"}

    @pytest.mark.asyncio
    async def test_drill_video_goes_to_upload(
        self, mutations: MutationService, upstream: Any
    ) -> None:
        upstream.add_json("/api/drills/8/upload", "{}")

        await mutations.submit_drill(8, files={"video": ("a.mp4", b"\x00", "video/mp4")})

        assert upstream.requests[-1].url.path == "/api/drills/8/upload"
