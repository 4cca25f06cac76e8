"""Mutation invalidation derived from a resource dependency graph.

Instead of every mutation site listing the query keys it must invalidate,
read views declare which entities they depend on and mutations declare
which entities they write. The invalidation set of a mutation is every
view that depends on a written entity, or on an entity derived from one
(e.g. approving a verification changes the user record).

Adding a new read view therefore only needs one QueryView registration;
every mutation touching its entities picks it up automatically.

Usage:
    policy = InvalidationPolicy()
    policy.keys_for(MutationType.DELETE_POST)
    # [("/api/posts",), ("/api/admin/posts",), ("/api/admin/posts/stats",),
    #  ("/api/admin/reported-posts",)]
    policy.apply(query_client, MutationType.ADD_COMMENT, post_id=42)
"""

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from sportsapp.core.exceptions import MissingRouteParamError, UnknownMutationError
from sportsapp.query.cache import QueryClient, QueryKey

logger = structlog.get_logger(__name__)


class Entity(str, Enum):
    """Mutable resource types."""

    POST = "post"
    POST_POINT = "post_point"
    COMMENT = "comment"
    POST_REPORT = "post_report"
    POINTS = "points"
    USER = "user"
    VERIFICATION = "verification"
    REDEMPTION = "redemption"
    DRILL = "drill"
    TRYOUT = "tryout"
    NOTIFICATION = "notification"
    MESSAGE = "message"
    ADMIN_SESSION = "admin_session"


class MutationType(str, Enum):
    """State-changing actions."""

    CREATE_POST = "create_post"
    DELETE_POST = "delete_post"
    GIVE_POINT = "give_point"
    REPORT_POST = "report_post"
    ADD_COMMENT = "add_comment"
    DELETE_COMMENT = "delete_comment"
    APPROVE_VERIFICATION = "approve_verification"
    REJECT_VERIFICATION = "reject_verification"
    REDEEM_POINTS = "redeem_points"
    APPROVE_REDEMPTION = "approve_redemption"
    REJECT_REDEMPTION = "reject_redemption"
    SUBMIT_DRILL = "submit_drill"
    APPROVE_DRILL = "approve_drill"
    REJECT_DRILL = "reject_drill"
    APPLY_TRYOUT = "apply_tryout"
    UPDATE_TRYOUT_STATUS = "update_tryout_status"
    MARK_NOTIFICATION_READ = "mark_notification_read"
    MARK_ALL_NOTIFICATIONS_READ = "mark_all_notifications_read"
    SEND_MESSAGE = "send_message"
    MARK_CONVERSATION_READ = "mark_conversation_read"
    UPDATE_PROFILE = "update_profile"
    DELETE_USER = "delete_user"
    ADMIN_LOGIN = "admin_login"


@dataclass(frozen=True)
class QueryView:
    """A read view: a query key prefix plus the entities it shows.

    Key parts written as "{name}" are filled from mutation parameters.
    """

    name: str
    key: tuple[str, ...]
    depends_on: frozenset[Entity]

    @property
    def params(self) -> list[str]:
        return [p[1:-1] for p in self.key if p.startswith("{") and p.endswith("}")]

    def render(self, params: Mapping[str, Any]) -> QueryKey:
        """Fill template parts.

        Raises:
            MissingRouteParamError: If a template parameter is not supplied
        """
        parts: list[Any] = []
        for part in self.key:
            if part.startswith("{") and part.endswith("}"):
                name = part[1:-1]
                if params.get(name) is None:
                    raise MissingRouteParamError("/".join(self.key), name)
                parts.append(params[name])
            else:
                parts.append(part)
        return tuple(parts)


def view(name: str, key: tuple[str, ...], *depends_on: Entity) -> QueryView:
    return QueryView(name=name, key=key, depends_on=frozenset(depends_on))


class InvalidationGraph:
    """Entities, the derivation edges between them, and the views on top."""

    def __init__(self) -> None:
        self._views: dict[str, QueryView] = {}
        self._edges: dict[Entity, set[Entity]] = {}

    @property
    def views(self) -> list[QueryView]:
        return list(self._views.values())

    def add_view(self, query_view: QueryView) -> None:
        self._views[query_view.name] = query_view

    def add_edge(self, upstream: Entity, downstream: Entity) -> None:
        """Declare that writing `upstream` also changes `downstream`."""
        self._edges.setdefault(upstream, set()).add(downstream)

    def closure(self, entities: Iterable[Entity]) -> set[Entity]:
        """All entities reachable from the written ones (cycle-safe)."""
        seen: set[Entity] = set()
        queue = deque(entities)
        while queue:
            entity = queue.popleft()
            if entity in seen:
                continue
            seen.add(entity)
            queue.extend(self._edges.get(entity, ()))
        return seen

    def affected_views(self, entities: Iterable[Entity]) -> list[QueryView]:
        changed = self.closure(entities)
        return [v for v in self._views.values() if v.depends_on & changed]

    def keys_for(
        self, entities: Iterable[Entity], params: Mapping[str, Any] | None = None
    ) -> list[QueryKey]:
        """Query key prefixes to invalidate, in view registration order.

        Templated views whose parameters are not supplied are skipped.
        """
        params = params or {}
        keys: list[QueryKey] = []
        for query_view in self.affected_views(entities):
            try:
                key = query_view.render(params)
            except MissingRouteParamError as e:
                logger.debug("invalidation_view_skipped", view=query_view.name, error=e.message)
                continue
            if key not in keys:
                keys.append(key)
        return keys


def build_default_graph() -> InvalidationGraph:
    """The SportsApp read views and entity derivations."""
    graph = InvalidationGraph()

    # Posts
    graph.add_view(
        view("feed", ("/api/posts",), Entity.POST, Entity.POST_POINT, Entity.COMMENT)
    )
    graph.add_view(view("post_comments", ("/api/posts", "{post_id}", "comments"), Entity.COMMENT))
    graph.add_view(view("admin_posts", ("/api/admin/posts",), Entity.POST))
    graph.add_view(view("admin_post_stats", ("/api/admin/posts/stats",), Entity.POST))
    graph.add_view(
        view("reported_posts", ("/api/admin/reported-posts",), Entity.POST, Entity.POST_REPORT)
    )
    graph.add_view(
        view("user_posts", ("/api/users", "{user_id}", "posts"), Entity.POST, Entity.POST_POINT)
    )

    # Users and points
    graph.add_view(view("users", ("/api/users",), Entity.USER, Entity.POINTS))
    graph.add_view(view("user_profiles", ("/api/users/profile",), Entity.USER, Entity.POINTS))
    graph.add_view(
        view("user_profile", ("/api/users", "{user_id}", "profile"), Entity.USER, Entity.POINTS)
    )
    graph.add_view(view("current_user", ("/api/user",), Entity.USER, Entity.POINTS))

    # Redemptions and verification
    graph.add_view(
        view("user_redemptions", ("/api/users", "{user_id}", "redemptions"), Entity.REDEMPTION)
    )
    graph.add_view(view("admin_redemptions", ("/api/admin/redemptions",), Entity.REDEMPTION))
    graph.add_view(
        view("verification_requests", ("/api/admin/verification-requests",), Entity.VERIFICATION)
    )

    # Drills and tryouts
    graph.add_view(view("drills", ("/api/drills",), Entity.DRILL))
    graph.add_view(view("admin_drills", ("/api/admin/drills",), Entity.DRILL))
    graph.add_view(view("my_tryouts", ("/api/user/tryout-applications",), Entity.TRYOUT))
    graph.add_view(view("admin_tryouts", ("/api/admin/tryout-applications",), Entity.TRYOUT))

    # Notifications and messages
    graph.add_view(view("notifications", ("/api/notifications",), Entity.NOTIFICATION))
    graph.add_view(
        view("unread_notifications", ("/api/notifications/unread-count",), Entity.NOTIFICATION)
    )
    graph.add_view(view("conversations", ("/api/conversations",), Entity.MESSAGE))
    graph.add_view(
        view("unread_conversations", ("/api/conversations/unread-count",), Entity.MESSAGE)
    )

    graph.add_view(view("admin_status", ("/api/admin/status",), Entity.ADMIN_SESSION))

    graph.add_edge(Entity.VERIFICATION, Entity.USER)
    graph.add_edge(Entity.REDEMPTION, Entity.POINTS)
    graph.add_edge(Entity.POST_POINT, Entity.POINTS)
    return graph


MUTATION_WRITES: dict[MutationType, frozenset[Entity]] = {
    MutationType.CREATE_POST: frozenset({Entity.POST, Entity.POINTS}),
    MutationType.DELETE_POST: frozenset({Entity.POST}),
    MutationType.GIVE_POINT: frozenset({Entity.POST_POINT}),
    MutationType.REPORT_POST: frozenset({Entity.POST_REPORT}),
    MutationType.ADD_COMMENT: frozenset({Entity.COMMENT}),
    MutationType.DELETE_COMMENT: frozenset({Entity.COMMENT}),
    MutationType.APPROVE_VERIFICATION: frozenset({Entity.VERIFICATION}),
    MutationType.REJECT_VERIFICATION: frozenset({Entity.VERIFICATION}),
    MutationType.REDEEM_POINTS: frozenset({Entity.REDEMPTION}),
    MutationType.APPROVE_REDEMPTION: frozenset({Entity.REDEMPTION}),
    MutationType.REJECT_REDEMPTION: frozenset({Entity.REDEMPTION}),
    MutationType.SUBMIT_DRILL: frozenset({Entity.DRILL}),
    MutationType.APPROVE_DRILL: frozenset({Entity.DRILL, Entity.POINTS, Entity.NOTIFICATION}),
    MutationType.REJECT_DRILL: frozenset({Entity.DRILL, Entity.POINTS, Entity.NOTIFICATION}),
    MutationType.APPLY_TRYOUT: frozenset({Entity.TRYOUT}),
    MutationType.UPDATE_TRYOUT_STATUS: frozenset({Entity.TRYOUT}),
    MutationType.MARK_NOTIFICATION_READ: frozenset({Entity.NOTIFICATION}),
    MutationType.MARK_ALL_NOTIFICATIONS_READ: frozenset({Entity.NOTIFICATION}),
    MutationType.SEND_MESSAGE: frozenset({Entity.MESSAGE}),
    MutationType.MARK_CONVERSATION_READ: frozenset({Entity.MESSAGE}),
    MutationType.UPDATE_PROFILE: frozenset({Entity.USER}),
    MutationType.DELETE_USER: frozenset({Entity.USER, Entity.POST}),
    MutationType.ADMIN_LOGIN: frozenset({Entity.ADMIN_SESSION}),
}


class InvalidationPolicy:
    """Maps mutations to the query key prefixes they make stale."""

    def __init__(
        self,
        graph: InvalidationGraph | None = None,
        writes: Mapping[MutationType, frozenset[Entity]] | None = None,
    ) -> None:
        self.graph = graph or build_default_graph()
        self.writes = dict(writes if writes is not None else MUTATION_WRITES)

    def keys_for(self, mutation: MutationType | str, **params: Any) -> list[QueryKey]:
        """Raises UnknownMutationError if the mutation writes nothing known."""
        try:
            entities = self.writes[MutationType(mutation)]
        except (KeyError, ValueError):
            raise UnknownMutationError(str(mutation)) from None
        return self.graph.keys_for(entities, params)

    def apply(
        self, client: QueryClient, mutation: MutationType | str, **params: Any
    ) -> list[QueryKey]:
        """Invalidate every affected prefix on the client.

        Returns:
            The prefixes that were invalidated
        """
        prefixes = self.keys_for(mutation, **params)
        for prefix in prefixes:
            client.invalidate_queries(prefix)
        logger.info(
            "mutation_invalidated",
            mutation=MutationType(mutation).value,
            prefixes=[list(p) for p in prefixes],
        )
        return prefixes
