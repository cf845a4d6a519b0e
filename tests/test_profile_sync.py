from __future__ import annotations

import pytest

from project_tracker.client import LocalCacheStore, ProfileSync, SessionManager
from project_tracker.errors import AuthenticationRequiredError, ValidationError
from project_tracker.models import UserProfile

pytestmark = pytest.mark.asyncio

PROFILE_KEY = "profile_alice@x.com"


@pytest.fixture()
def profiles(api, sessions: SessionManager, cache: LocalCacheStore) -> ProfileSync:
    return ProfileSync(api, sessions, cache)


@pytest.fixture()
async def signed_in(sessions: SessionManager) -> SessionManager:
    await sessions.login("alice@x.com", "secret-1")
    return sessions


async def test_no_profile_without_session(profiles: ProfileSync, remote) -> None:
    assert await profiles.load() is None
    assert remote.requests == []


async def test_remote_profile_takes_identity_from_session(
    profiles: ProfileSync, signed_in, remote, cache: LocalCacheStore
) -> None:
    remote.profile.update(name="Stale name", email="old@x.com", title="Dean")

    profile = await profiles.load()

    assert profile.name == "Alice"
    assert profile.email == "alice@x.com"
    assert profile.title == "Dean"
    cached = await cache.read_model(PROFILE_KEY, UserProfile)
    assert cached.title == "Dean"


async def test_offline_load_uses_cached_profile(
    profiles: ProfileSync, signed_in, remote, cache: LocalCacheStore
) -> None:
    await cache.write_model(
        PROFILE_KEY, UserProfile(id="user-1", email="alice@x.com", name="Old", department="Physics")
    )
    remote.go_offline("GET")

    profile = await profiles.load()

    assert profile.department == "Physics"
    assert profile.name == "Alice"


async def test_offline_load_without_cache_gives_defaults(profiles: ProfileSync, signed_in, remote) -> None:
    remote.fail("GET", 503)

    profile = await profiles.load()

    assert profile.id == "user-1"
    assert profile.email == "alice@x.com"
    assert profile.language == "ru"
    assert profile.timezone == "Europe/Moscow"


async def test_save_pushes_changes_and_keeps_identity(
    profiles: ProfileSync, signed_in, remote, cache: LocalCacheStore
) -> None:
    await profiles.load()

    saved = await profiles.save({"title": "Head of office", "email": "mallory@x.com", "theme": "dark"})

    assert saved.title == "Head of office"
    assert saved.email == "alice@x.com"
    assert remote.profile["title"] == "Head of office"
    assert "email" not in remote.profile or remote.profile["email"] == "alice@x.com"
    assert (await cache.read_model(PROFILE_KEY, UserProfile)).theme == "dark"


async def test_failed_save_still_writes_the_offline_copy(
    profiles: ProfileSync, signed_in, remote, cache: LocalCacheStore
) -> None:
    await profiles.load()
    remote.go_offline("PUT")

    saved = await profiles.save({"department": "Chemistry"})

    assert saved.department == "Chemistry"
    assert remote.profile.get("department") is None
    assert (await cache.read_model(PROFILE_KEY, UserProfile)).department == "Chemistry"
    remote.go_offline("GET")
    assert (await profiles.load()).department == "Chemistry"


async def test_invalid_changes_are_rejected_before_any_write(
    profiles: ProfileSync, signed_in, remote, cache: LocalCacheStore
) -> None:
    await profiles.load()
    before = await cache.read_model(PROFILE_KEY, UserProfile)

    with pytest.raises(ValidationError):
        await profiles.save({"language": "fr"})

    assert ("PUT", "/profile") not in remote.requests
    assert await cache.read_model(PROFILE_KEY, UserProfile) == before


async def test_save_requires_session(profiles: ProfileSync) -> None:
    with pytest.raises(AuthenticationRequiredError):
        await profiles.save({"title": "x"})
