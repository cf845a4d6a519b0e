"""Client-side synchronisation layer consumed by the UI."""

from __future__ import annotations

from .api import ApiClient, ApiResult
from .auth import AuthProvider, AuthProviderError, AuthResponse, AuthSession, AuthUser, GoTrueAuthProvider
from .local_cache import CacheMetrics, LocalCacheStore
from .managers import ManagerDirectory, derive_managers, manager_projects
from .profile import ProfileSync
from .session import SessionManager
from .sync import POLICY_TABLE, PolicyDecision, ProjectSynchronizer, SyncOperation, SyncState, resolve_policy
from .teams import TeamSync, search_teams
from .user_admin import UserDirectory, filter_users
from .view_mode import RemoteOutcome, ViewMode, select_view_mode

__all__ = [
    "ApiClient",
    "ApiResult",
    "AuthProvider",
    "AuthProviderError",
    "AuthResponse",
    "AuthSession",
    "AuthUser",
    "CacheMetrics",
    "GoTrueAuthProvider",
    "LocalCacheStore",
    "ManagerDirectory",
    "POLICY_TABLE",
    "PolicyDecision",
    "ProfileSync",
    "ProjectSynchronizer",
    "RemoteOutcome",
    "SessionManager",
    "SyncOperation",
    "SyncState",
    "TeamSync",
    "UserDirectory",
    "ViewMode",
    "derive_managers",
    "filter_users",
    "manager_projects",
    "resolve_policy",
    "search_teams",
    "select_view_mode",
]
