"""State-changing actions against the REST API.

Each action sends its request and, only once the server accepted it,
invalidates the query prefixes derived for that mutation by the
InvalidationPolicy. A failed request propagates its ApiError (carrying the
server message) and leaves the query cache untouched.
"""

from collections.abc import Mapping
from typing import Any

import structlog

from sportsapp.query.cache import QueryClient
from sportsapp.query.invalidation import InvalidationPolicy, MutationType
from sportsapp.services.api_client import ApiClient

logger = structlog.get_logger(__name__)


class MutationService:
    """Mutations with automatic cache invalidation.

    Usage:
        ```python
        mutations = MutationService(api, query_client)
        await mutations.delete_post(42)
        ```
    """

    def __init__(
        self,
        api: ApiClient,
        query_client: QueryClient,
        policy: InvalidationPolicy | None = None,
    ) -> None:
        self.api = api
        self.query_client = query_client
        self.policy = policy or InvalidationPolicy()

    async def run(
        self,
        mutation: MutationType,
        method: str,
        url: str,
        data: Any = None,
        files: Mapping[str, Any] | None = None,
        **params: Any,
    ) -> Any:
        """Send the request, then invalidate on success.

        Args:
            mutation: Which invalidation rule applies
            method: HTTP method
            url: Request path
            data: Request body
            files: Multipart parts
            **params: Values for templated views (e.g. post_id, user_id)

        Returns:
            Decoded JSON body, or None for an empty response

        Raises:
            ApiError: If the server rejected the request
            NetworkError: If the request never reached the server
        """
        try:
            response = await self.api.request(method, url, data, files)
        except Exception as e:
            logger.warning("mutation_failed", mutation=mutation.value, url=url, error=str(e))
            raise
        self.policy.apply(self.query_client, mutation, **params)
        if not response.content:
            return None
        return response.json()

    # -------------------------------------------------------------------------
    # Posts and comments
    # -------------------------------------------------------------------------

    async def create_post(
        self, data: Any, files: Mapping[str, Any] | None = None, *, user_id: Any = None
    ) -> Any:
        return await self.run(
            MutationType.CREATE_POST, "POST", "/api/posts", data, files, user_id=user_id
        )

    async def delete_post(self, post_id: Any, *, user_id: Any = None) -> Any:
        return await self.run(
            MutationType.DELETE_POST, "DELETE", f"/api/posts/{post_id}", user_id=user_id
        )

    async def give_point(self, post_id: Any, *, user_id: Any = None) -> Any:
        return await self.run(
            MutationType.GIVE_POINT, "POST", f"/api/posts/{post_id}/point", user_id=user_id
        )

    async def report_post(self, post_id: Any, reason: str | None = None) -> Any:
        data = {"reason": reason} if reason else None
        return await self.run(
            MutationType.REPORT_POST, "POST", f"/api/posts/{post_id}/report", data
        )

    async def add_comment(self, post_id: Any, content: str) -> Any:
        return await self.run(
            MutationType.ADD_COMMENT,
            "POST",
            f"/api/posts/{post_id}/comments",
            {"content": content},
            post_id=post_id,
        )

    async def delete_comment(self, comment_id: Any, *, post_id: Any = None) -> Any:
        return await self.run(
            MutationType.DELETE_COMMENT,
            "DELETE",
            f"/api/comments/{comment_id}",
            post_id=post_id,
        )

    # -------------------------------------------------------------------------
    # Admin review
    # -------------------------------------------------------------------------

    async def approve_verification(self, user_id: Any) -> Any:
        return await self.run(
            MutationType.APPROVE_VERIFICATION,
            "POST",
            f"/api/admin/verify-user/{user_id}",
            user_id=user_id,
        )

    async def reject_verification(self, user_id: Any) -> Any:
        return await self.run(
            MutationType.REJECT_VERIFICATION,
            "POST",
            f"/api/admin/reject-user/{user_id}",
            user_id=user_id,
        )

    async def approve_redemption(self, redemption_id: Any, *, user_id: Any = None) -> Any:
        return await self._set_redemption_status(
            MutationType.APPROVE_REDEMPTION, redemption_id, "approved", user_id
        )

    async def reject_redemption(self, redemption_id: Any, *, user_id: Any = None) -> Any:
        return await self._set_redemption_status(
            MutationType.REJECT_REDEMPTION, redemption_id, "rejected", user_id
        )

    async def _set_redemption_status(
        self, mutation: MutationType, redemption_id: Any, status: str, user_id: Any
    ) -> Any:
        return await self.run(
            mutation,
            "PUT",
            f"/api/admin/redemptions/{redemption_id}/status",
            {"status": status},
            user_id=user_id,
        )

    async def approve_drill(self, user_drill_id: Any, *, user_id: Any = None) -> Any:
        return await self.run(
            MutationType.APPROVE_DRILL,
            "POST",
            f"/api/admin/drills/{user_drill_id}/approve",
            user_id=user_id,
        )

    async def reject_drill(self, user_drill_id: Any, *, user_id: Any = None) -> Any:
        return await self.run(
            MutationType.REJECT_DRILL,
            "POST",
            f"/api/admin/drills/{user_drill_id}/reject",
            user_id=user_id,
        )

    async def update_tryout_status(self, application_id: Any, status: str) -> Any:
        return await self.run(
            MutationType.UPDATE_TRYOUT_STATUS,
            "PATCH",
            f"/api/admin/tryout-applications/{application_id}/status",
            {"status": status},
        )

    async def delete_user(self, user_id: Any) -> Any:
        return await self.run(
            MutationType.DELETE_USER, "DELETE", f"/api/users/{user_id}", user_id=user_id
        )

    async def admin_login(self, username: str, password: str) -> Any:
        return await self.run(
            MutationType.ADMIN_LOGIN,
            "POST",
            "/api/admin/login",
            {"username": username, "password": password},
        )

    # -------------------------------------------------------------------------
    # Player actions
    # -------------------------------------------------------------------------

    async def redeem_points(self, user_id: Any, data: Any) -> Any:
        return await self.run(
            MutationType.REDEEM_POINTS,
            "POST",
            f"/api/users/{user_id}/redeem-voucher",
            data,
            user_id=user_id,
        )

    async def submit_drill(
        self, drill_id: Any, files: Mapping[str, Any] | None = None, *, user_id: Any = None
    ) -> Any:
        """Submit a drill attempt; a video upload goes to the upload endpoint."""
        action = "upload" if files else "submit"
        return await self.run(
            MutationType.SUBMIT_DRILL,
            "POST",
            f"/api/drills/{drill_id}/{action}",
            files=files,
            user_id=user_id,
        )

    async def apply_tryout(self, data: Any) -> Any:
        return await self.run(MutationType.APPLY_TRYOUT, "POST", "/api/tryouts", data)

    async def update_profile(self, user_id: Any, data: Any) -> Any:
        return await self.run(
            MutationType.UPDATE_PROFILE,
            "PUT",
            f"/api/users/{user_id}/profile",
            data,
            user_id=user_id,
        )

    # -------------------------------------------------------------------------
    # Notifications and messages
    # -------------------------------------------------------------------------

    async def mark_notification_read(self, notification_id: Any) -> Any:
        return await self.run(
            MutationType.MARK_NOTIFICATION_READ,
            "PATCH",
            f"/api/notifications/{notification_id}/read",
        )

    async def mark_all_notifications_read(self) -> Any:
        return await self.run(
            MutationType.MARK_ALL_NOTIFICATIONS_READ,
            "PATCH",
            "/api/notifications/mark-all-seen",
        )

    async def send_message(self, conversation_id: Any, content: str) -> Any:
        return await self.run(
            MutationType.SEND_MESSAGE,
            "POST",
            f"/api/conversations/{conversation_id}/messages",
            {"content": content},
        )

    async def mark_conversation_read(self, conversation_id: Any) -> Any:
        return await self.run(
            MutationType.MARK_CONVERSATION_READ,
            "PATCH",
            f"/api/conversations/{conversation_id}/read",
        )
