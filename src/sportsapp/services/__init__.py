"""Services package for SportsApp.

This module exports the REST client, read views, mutations, persisted
client preferences and the PWA manager.
"""

from sportsapp.services.api_client import ApiClient, key_to_url, raise_for_status
from sportsapp.services.local_storage import (
    LanguagePreference,
    LocalStorage,
    MemoryLocalStorage,
    RecentSearches,
    RedisLocalStorage,
    SavedLogin,
    SavedLogins,
)
from sportsapp.services.mutations import MutationService
from sportsapp.services.pwa import (
    CacheController,
    DeferredInstallPrompt,
    InstallOutcome,
    Installer,
    NetworkStatus,
    PWAManager,
    RegistrationCacheController,
)
from sportsapp.services.queries import QueryService

__all__ = [
    # REST
    "ApiClient",
    "key_to_url",
    "raise_for_status",
    # Queries and mutations
    "MutationService",
    "QueryService",
    # Local storage
    "LanguagePreference",
    "LocalStorage",
    "MemoryLocalStorage",
    "RecentSearches",
    "RedisLocalStorage",
    "SavedLogin",
    "SavedLogins",
    # PWA
    "CacheController",
    "DeferredInstallPrompt",
    "InstallOutcome",
    "Installer",
    "NetworkStatus",
    "PWAManager",
    "RegistrationCacheController",
]
