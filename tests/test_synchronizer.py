from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError as PydanticValidationError

from project_tracker.client import LocalCacheStore, ProjectSynchronizer, SessionManager, SyncState, ViewMode
from project_tracker.core.config import Settings
from project_tracker.errors import AuthenticationError, AuthenticationRequiredError, ValidationError
from project_tracker.models import Project, ProjectStatus

pytestmark = pytest.mark.asyncio

ALICE_KEY = "projects_alice@x.com"


async def _spin() -> None:
    await asyncio.sleep(0.05)


@pytest.fixture()
async def logged_in(synchronizer: ProjectSynchronizer) -> ProjectSynchronizer:
    await synchronizer.login("alice@x.com", "secret-1")
    return synchronizer


async def _cached_ids(cache: LocalCacheStore, key: str = ALICE_KEY) -> list[str] | None:
    projects = await cache.read_projects(key)
    return None if projects is None else [project.id for project in projects]


# -- load ------------------------------------------------------------------------


async def test_anonymous_start_shows_any_cached_project_set(
    synchronizer: ProjectSynchronizer, cache: LocalCacheStore, make_project
) -> None:
    await cache.write_projects(ALICE_KEY, [make_project("P1")])

    await synchronizer.start()

    assert [project.id for project in synchronizer.projects] == ["P1"]
    assert synchronizer.state is SyncState.OFFLINE_PUBLIC
    assert synchronizer.view_mode is ViewMode.DEMO
    assert synchronizer.session is None


async def test_anonymous_start_skips_placeholder_and_empty_namespaces(
    synchronizer: ProjectSynchronizer, cache: LocalCacheStore, make_project
) -> None:
    await cache.write_projects("projects_undefined", [make_project("ghost")])
    await cache.write_projects("projects_bob@x.com", [])

    await synchronizer.start()

    assert synchronizer.projects == ()
    assert synchronizer.state is SyncState.OFFLINE_PUBLIC


async def test_public_namespace_replaces_scanning(
    api, sessions: SessionManager, cache: LocalCacheStore, settings: Settings, make_project
) -> None:
    settings = settings.model_copy(update={"public_namespace": "projects_public"})
    await cache.write_projects(ALICE_KEY, [make_project("private")])
    await cache.write_projects("projects_public", [make_project("shared")])
    synchronizer = ProjectSynchronizer(api, sessions, cache, settings=settings)

    await synchronizer.start()

    assert [project.id for project in synchronizer.projects] == ["shared"]


async def test_public_scan_can_be_disabled(
    api, sessions: SessionManager, cache: LocalCacheStore, settings: Settings, make_project
) -> None:
    settings = settings.model_copy(update={"public_scan_enabled": False})
    await cache.write_projects(ALICE_KEY, [make_project("private")])
    synchronizer = ProjectSynchronizer(api, sessions, cache, settings=settings)

    await synchronizer.start()

    assert synchronizer.projects == ()


async def test_authenticated_load_paints_cache_then_replaces_with_remote(
    synchronizer: ProjectSynchronizer, auth_provider, cache: LocalCacheStore, remote, make_project
) -> None:
    _, user = auth_provider.users["alice@x.com"]
    auth_provider.session = auth_provider.issue_session(user)
    await cache.write_projects(ALICE_KEY, [make_project("P1")])
    snapshots: list[tuple[Project, ...]] = []
    synchronizer.subscribe(snapshots.append)

    await synchronizer.start()

    assert [[project.id for project in snapshot] for snapshot in snapshots] == [["P1"], []]
    assert synchronizer.projects == ()
    assert await _cached_ids(cache) == []
    assert synchronizer.state is SyncState.CONNECTED
    assert synchronizer.view_mode is ViewMode.CONNECTED


async def test_failed_remote_load_keeps_cached_list(
    synchronizer: ProjectSynchronizer, auth_provider, cache: LocalCacheStore, remote, make_project
) -> None:
    _, user = auth_provider.users["alice@x.com"]
    auth_provider.session = auth_provider.issue_session(user)
    await cache.write_projects(ALICE_KEY, [make_project("P1")])
    remote.fail("GET", 503)

    await synchronizer.start()

    assert [project.id for project in synchronizer.projects] == ["P1"]
    assert synchronizer.state is SyncState.OFFLINE_DEGRADED
    assert synchronizer.view_mode is ViewMode.DEMO


async def test_remote_list_arriving_after_local_change_is_discarded(
    synchronizer: ProjectSynchronizer, auth_provider, remote, cache: LocalCacheStore, make_project, draft_payload
) -> None:
    _, user = auth_provider.users["alice@x.com"]
    auth_provider.session = auth_provider.issue_session(user)
    remote.projects["7"] = make_project("7").to_payload()
    gate = remote.hold("GET", "/projects")

    loading = asyncio.create_task(synchronizer.start())
    await _spin()
    assert ("GET", "/projects") in remote.requests

    created = await synchronizer.add(draft_payload)
    gate.set()
    await loading

    assert [project.id for project in synchronizer.projects] == [created.id]
    assert await _cached_ids(cache) == [created.id]


async def test_update_during_cache_read_is_not_overwritten_by_the_cached_list(
    logged_in: ProjectSynchronizer, remote, cache: LocalCacheStore, draft_payload, monkeypatch
) -> None:
    project = await logged_in.add({**draft_payload, "title": "Old"})
    read_done = asyncio.Event()
    release_read = asyncio.Event()
    read_projects = cache.read_projects

    async def slow_read(key: str):
        projects = await read_projects(key)
        read_done.set()
        await release_read.wait()
        return projects

    monkeypatch.setattr(cache, "read_projects", slow_read)
    gate = remote.hold("PUT", f"/projects/{project.id}")

    loading = asyncio.create_task(logged_in.load())
    await read_done.wait()
    updating = asyncio.create_task(logged_in.update(project.with_changes(title="New")))
    await _spin()
    release_read.set()
    await loading

    assert logged_in.get(project.id).title == "New"

    gate.set()
    await updating

    assert logged_in.get(project.id).title == "New"
    assert remote.projects[project.id]["title"] == "New"
    cached = await read_projects(ALICE_KEY)
    assert [item.title for item in cached] == ["New"]


# -- authentication gate ---------------------------------------------------------


async def test_mutations_without_session_only_signal_authentication_required(
    synchronizer: ProjectSynchronizer, cache: LocalCacheStore, remote, make_project, draft_payload
) -> None:
    await cache.write_projects(ALICE_KEY, [make_project("P1")])
    await synchronizer.start()
    before = synchronizer.projects
    remote.requests.clear()

    with pytest.raises(AuthenticationRequiredError) as add_error:
        await synchronizer.add(draft_payload)
    with pytest.raises(AuthenticationRequiredError):
        await synchronizer.update(make_project("P1", title="Changed"))
    with pytest.raises(AuthenticationRequiredError):
        await synchronizer.delete("P1")

    assert add_error.value.operation == "add"
    assert synchronizer.projects == before
    assert await _cached_ids(cache) == ["P1"]
    assert remote.requests == []


# -- add -------------------------------------------------------------------------


async def test_add_uses_server_assigned_identity(
    logged_in: ProjectSynchronizer, cache: LocalCacheStore, draft_payload
) -> None:
    project = await logged_in.add(draft_payload)

    assert project.id == "42"
    assert project.created_at == "2024-03-01T09:00:00.000Z"
    assert logged_in.projects == (project,)
    assert await _cached_ids(cache) == ["42"]
    assert logged_in.view_mode is ViewMode.CONNECTED


async def test_add_with_network_failure_keeps_project_locally(
    logged_in: ProjectSynchronizer, cache: LocalCacheStore, remote, draft_payload
) -> None:
    remote.go_offline("POST")

    project = await logged_in.add(draft_payload)

    assert len(logged_in.projects) == 1
    assert project.title == "T"
    assert project.id
    assert project.created_at == "2023-11-14T22:13:20.000Z"
    assert await _cached_ids(cache) == [project.id]
    assert logged_in.view_mode is ViewMode.DEMO
    assert logged_in.state is SyncState.OFFLINE_DEGRADED


async def test_offline_ids_never_collide(logged_in: ProjectSynchronizer, remote, draft_payload) -> None:
    remote.go_offline("POST")

    first = await logged_in.add(draft_payload)
    second = await logged_in.add({**draft_payload, "title": "T2"})

    assert first.id == "1700000000000"
    assert second.id == "1700000000001"


async def test_add_rejects_incomplete_draft_before_any_call(
    logged_in: ProjectSynchronizer, cache: LocalCacheStore, remote
) -> None:
    remote.requests.clear()

    with pytest.raises(ValidationError):
        await logged_in.add({"title": "T"})

    assert logged_in.projects == ()
    assert remote.requests == []
    assert await _cached_ids(cache) == []


async def test_successful_call_leaves_degraded_state(
    logged_in: ProjectSynchronizer, remote, draft_payload
) -> None:
    remote.go_offline("POST")
    await logged_in.add(draft_payload)
    assert logged_in.view_mode is ViewMode.DEMO

    remote.restore()
    await logged_in.add(draft_payload)

    assert logged_in.state is SyncState.CONNECTED
    assert logged_in.view_mode is ViewMode.CONNECTED


# -- update ----------------------------------------------------------------------


async def test_update_is_optimistic_when_remote_fails(
    logged_in: ProjectSynchronizer, cache: LocalCacheStore, remote, draft_payload
) -> None:
    project = await logged_in.add(draft_payload)
    remote.fail("PUT", 500)

    updated = await logged_in.update(project.with_changes(status=ProjectStatus.COMPLETED, progress=100))

    assert updated.status is ProjectStatus.COMPLETED
    assert logged_in.get(project.id).progress == 100
    cached = await cache.read_projects(ALICE_KEY)
    assert cached[0].status is ProjectStatus.COMPLETED
    assert logged_in.view_mode is ViewMode.DEMO


async def test_update_keeps_identity_fields(logged_in: ProjectSynchronizer, draft_payload) -> None:
    project = await logged_in.add(draft_payload)
    tampered = project.model_copy(update={"created_at": "1999-01-01T00:00:00.000Z", "title": "Renamed"})

    updated = await logged_in.update(tampered)

    assert updated.created_at == project.created_at
    assert logged_in.get(project.id).title == "Renamed"


async def test_update_of_unknown_project_is_rejected(logged_in: ProjectSynchronizer, make_project, remote) -> None:
    remote.requests.clear()

    with pytest.raises(ValidationError):
        await logged_in.update(make_project("missing"))

    assert remote.requests == []


async def test_updates_to_one_project_reach_the_remote_in_issue_order(
    logged_in: ProjectSynchronizer, remote, cache: LocalCacheStore, draft_payload
) -> None:
    project = await logged_in.add(draft_payload)
    gate = remote.hold("PUT", f"/projects/{project.id}")

    first = asyncio.create_task(logged_in.update(project.with_changes(status=ProjectStatus.IN_PROGRESS)))
    second = asyncio.create_task(logged_in.update(project.with_changes(status=ProjectStatus.SUBMITTED)))
    await _spin()

    puts = [request for request in remote.requests if request[0] == "PUT"]
    assert len(puts) == 1
    assert logged_in.get(project.id).status is ProjectStatus.SUBMITTED

    gate.set()
    await asyncio.gather(first, second)

    assert remote.projects[project.id]["status"] == "submitted"
    assert logged_in.get(project.id).status is ProjectStatus.SUBMITTED
    cached = await cache.read_projects(ALICE_KEY)
    assert cached[0].status is ProjectStatus.SUBMITTED


# -- delete ----------------------------------------------------------------------


async def test_delete_with_server_error_still_removes_locally(
    logged_in: ProjectSynchronizer, cache: LocalCacheStore, remote, draft_payload
) -> None:
    project = await logged_in.add(draft_payload)
    assert project.id == "42"
    remote.fail("DELETE", 500)

    removed = await logged_in.delete("42")

    assert removed is True
    assert logged_in.get("42") is None
    assert await _cached_ids(cache) == []
    assert logged_in.view_mode is ViewMode.DEMO


async def test_deleted_project_does_not_return_from_cache(
    logged_in: ProjectSynchronizer, remote, draft_payload
) -> None:
    project = await logged_in.add(draft_payload)
    remote.fail("DELETE", 500)
    remote.fail("GET", 500)

    await logged_in.delete(project.id)
    await logged_in.load()

    assert logged_in.get(project.id) is None


async def test_delete_of_unknown_id_reports_nothing_removed(logged_in: ProjectSynchronizer, remote) -> None:
    assert await logged_in.delete("nope") is False
    assert ("DELETE", "/projects/nope") in remote.requests


async def test_delete_waits_for_pending_update_of_same_project(
    logged_in: ProjectSynchronizer, remote, draft_payload
) -> None:
    project = await logged_in.add(draft_payload)
    gate = remote.hold("PUT", f"/projects/{project.id}")

    updating = asyncio.create_task(logged_in.update(project.with_changes(title="Edited")))
    deleting = asyncio.create_task(logged_in.delete(project.id))
    await _spin()
    assert ("DELETE", f"/projects/{project.id}") not in remote.requests

    gate.set()
    await asyncio.gather(updating, deleting)

    methods = [method for method, path in remote.requests if path == f"/projects/{project.id}"]
    assert methods == ["PUT", "DELETE"]
    assert project.id not in remote.projects
    assert logged_in.get(project.id) is None


# -- invariants ------------------------------------------------------------------


async def test_cache_mirrors_memory_after_mixed_sequence(
    logged_in: ProjectSynchronizer, cache: LocalCacheStore, remote, draft_payload
) -> None:
    online = await logged_in.add(draft_payload)
    remote.go_offline()
    offline = await logged_in.add({**draft_payload, "title": "Offline"})
    await logged_in.update(online.with_changes(progress=50))
    remote.restore()
    remote.fail("DELETE", 500)
    await logged_in.delete(offline.id)
    await logged_in.update(online.with_changes(progress=75))

    assert await cache.read_projects(ALICE_KEY) == list(logged_in.projects)
    assert [project.progress for project in logged_in.projects] == [75]


async def test_projects_snapshot_is_immutable(logged_in: ProjectSynchronizer, draft_payload) -> None:
    await logged_in.add(draft_payload)
    snapshot = logged_in.projects
    assert isinstance(snapshot, tuple)
    with pytest.raises(PydanticValidationError):
        snapshot[0].title = "mutated"  # type: ignore[misc]


# -- session transitions ---------------------------------------------------------


async def test_login_from_public_view_loads_remote_data(
    synchronizer: ProjectSynchronizer, remote, make_project
) -> None:
    remote.projects["7"] = make_project("7").to_payload()
    await synchronizer.start()
    assert synchronizer.state is SyncState.OFFLINE_PUBLIC

    session = await synchronizer.login("alice@x.com", "secret-1")

    assert session.user_email == "alice@x.com"
    assert synchronizer.state is SyncState.CONNECTED
    assert [project.id for project in synchronizer.projects] == ["7"]


async def test_failed_login_changes_nothing(synchronizer: ProjectSynchronizer, cache, make_project) -> None:
    await cache.write_projects(ALICE_KEY, [make_project("P1")])
    await synchronizer.start()

    with pytest.raises(AuthenticationError):
        await synchronizer.login("alice@x.com", "wrong")

    assert synchronizer.state is SyncState.OFFLINE_PUBLIC
    assert [project.id for project in synchronizer.projects] == ["P1"]


async def test_logout_falls_back_to_public_data(
    logged_in: ProjectSynchronizer, auth_provider, draft_payload
) -> None:
    project = await logged_in.add(draft_payload)

    await logged_in.logout()

    assert logged_in.session is None
    assert logged_in.state is SyncState.OFFLINE_PUBLIC
    assert [p.id for p in logged_in.projects] == [project.id]
    assert "sign_out" in auth_provider.calls


async def test_register_signs_in_and_loads(synchronizer: ProjectSynchronizer, auth_provider) -> None:
    auth_provider.add_user("zoe@x.com", "pw-123456", name="Zoe")

    session = await synchronizer.register("zoe@x.com", "pw-123456", "Zoe")

    assert session.user_name == "Zoe"
    assert synchronizer.state is SyncState.CONNECTED


# -- listeners -------------------------------------------------------------------


async def test_unsubscribe_and_failing_listener(logged_in: ProjectSynchronizer, draft_payload) -> None:
    received: list[int] = []

    def broken(_: tuple[Project, ...]) -> None:
        raise RuntimeError("listener bug")

    logged_in.subscribe(broken)
    unsubscribe = logged_in.subscribe(lambda projects: received.append(len(projects)))

    await logged_in.add(draft_payload)
    unsubscribe()
    await logged_in.add(draft_payload)

    assert received == [1]
    assert len(logged_in.projects) == 2
