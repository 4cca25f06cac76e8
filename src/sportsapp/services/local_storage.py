"""Persistent key-value storage for small client preferences.

Three records live here, each stored as JSON under a fixed key:

    sportsapp_saved_logins  quick-login accounts, newest first, at most 5
    recentSearches          searched usernames, newest first, at most 3
    app-language            interface language code (default "en")

A value that cannot be decoded is treated as empty rather than failing the
caller; the next write replaces it.
"""

import json
from dataclasses import asdict, dataclass
from typing import Any, Protocol

import structlog
from redis.asyncio import Redis

from sportsapp.config import get_settings
from sportsapp.core.exceptions import ValidationError

logger = structlog.get_logger(__name__)

SAVED_LOGINS_KEY = "sportsapp_saved_logins"
RECENT_SEARCHES_KEY = "recentSearches"
LANGUAGE_KEY = "app-language"

DEFAULT_LANGUAGE = "en"
SUPPORTED_LANGUAGES = frozenset({"en", "hi"})


class LocalStorage(Protocol):
    """String key-value store."""

    async def get_item(self, key: str) -> str | None: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...


class MemoryLocalStorage:
    """In-process storage, one dict per instance."""

    def __init__(self, items: dict[str, str] | None = None) -> None:
        self.items: dict[str, str] = dict(items or {})

    async def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    async def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class RedisLocalStorage:
    """Storage backed by Redis string keys under a per-client prefix.

    Usage:
        ```python
        storage = RedisLocalStorage(redis, prefix=f"sportsapp:ls:{session_id}:")
        await storage.set_item("app-language", "hi")
        ```
    """

    def __init__(self, redis: Redis, prefix: str = "sportsapp:ls:") -> None:
        """Initialize the storage.

        Args:
            redis: Async Redis client
            prefix: Prepended to every key
        """
        self.redis = redis
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get_item(self, key: str) -> str | None:
        try:
            value = await self.redis.get(self._key(key))
        except Exception as e:
            logger.warning("local_storage_get_failed", key=key, error=str(e))
            return None
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else value

    async def set_item(self, key: str, value: str) -> None:
        try:
            await self.redis.set(self._key(key), value)
        except Exception as e:
            logger.warning("local_storage_set_failed", key=key, error=str(e))

    async def remove_item(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
        except Exception as e:
            logger.warning("local_storage_remove_failed", key=key, error=str(e))


async def load_json_list(storage: LocalStorage, key: str) -> list[Any]:
    """Read a JSON array; anything else reads as empty."""
    raw = await storage.get_item(key)
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("local_storage_corrupt", key=key, error=str(e))
        return []
    if not isinstance(value, list):
        logger.warning("local_storage_corrupt", key=key, error="expected a list")
        return []
    return value


# -----------------------------------------------------------------------------
# Saved logins
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SavedLogin:
    username: str
    token: str


class SavedLogins:
    """Quick-login accounts, most recently saved first."""

    def __init__(self, storage: LocalStorage, limit: int | None = None) -> None:
        self.storage = storage
        self.limit = limit if limit is not None else get_settings().saved_logins_limit

    async def all(self) -> list[SavedLogin]:
        logins = []
        for item in await load_json_list(self.storage, SAVED_LOGINS_KEY):
            if isinstance(item, dict) and "username" in item and "token" in item:
                logins.append(SavedLogin(username=item["username"], token=item["token"]))
        return logins

    async def get(self, username: str) -> SavedLogin | None:
        for login in await self.all():
            if login.username == username:
                return login
        return None

    async def add(self, username: str, token: str) -> list[SavedLogin]:
        """Save (or refresh) a login and move it to the front.

        Returns:
            The stored list after truncation
        """
        current = [login for login in await self.all() if login.username != username]
        logins = [SavedLogin(username=username, token=token), *current][: self.limit]
        await self._save(logins)
        return logins

    async def remove(self, username: str) -> list[SavedLogin]:
        logins = [login for login in await self.all() if login.username != username]
        await self._save(logins)
        return logins

    async def clear(self) -> None:
        await self.storage.remove_item(SAVED_LOGINS_KEY)

    async def _save(self, logins: list[SavedLogin]) -> None:
        await self.storage.set_item(
            SAVED_LOGINS_KEY, json.dumps([asdict(login) for login in logins])
        )


# -----------------------------------------------------------------------------
# Recent searches
# -----------------------------------------------------------------------------


class RecentSearches:
    """Recently searched usernames, newest first without duplicates."""

    def __init__(self, storage: LocalStorage, limit: int | None = None) -> None:
        self.storage = storage
        self.limit = limit if limit is not None else get_settings().recent_searches_limit

    async def all(self) -> list[str]:
        stored = await load_json_list(self.storage, RECENT_SEARCHES_KEY)
        return [s for s in stored if isinstance(s, str)]

    async def add(self, term: str) -> list[str]:
        rest = [s for s in await self.all() if s != term]
        searches = [term, *rest][: self.limit]
        await self.storage.set_item(RECENT_SEARCHES_KEY, json.dumps(searches))
        return searches

    async def remove(self, term: str) -> list[str]:
        searches = [s for s in await self.all() if s != term]
        await self.storage.set_item(RECENT_SEARCHES_KEY, json.dumps(searches))
        return searches

    async def clear(self) -> None:
        await self.storage.remove_item(RECENT_SEARCHES_KEY)


# -----------------------------------------------------------------------------
# Language
# -----------------------------------------------------------------------------


class LanguagePreference:
    """Interface language code."""

    def __init__(self, storage: LocalStorage) -> None:
        self.storage = storage

    async def get(self) -> str:
        return await self.storage.get_item(LANGUAGE_KEY) or DEFAULT_LANGUAGE

    async def set(self, language: str) -> str:
        """Store a language code.

        Raises:
            ValidationError: If the code is not a supported language
        """
        if language not in SUPPORTED_LANGUAGES:
            raise ValidationError(
                f"Unsupported language {language!r}",
                field="language",
                details={"supported": ",".join(sorted(SUPPORTED_LANGUAGES))},
            )
        await self.storage.set_item(LANGUAGE_KEY, language)
        return language
